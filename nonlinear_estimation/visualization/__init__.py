"""
Visualization utilities for state estimation.
"""

from .covariances import (plot_covariance_ellipse, plot_uncertainty, plot_state_bounds,
                          plot_consistency)

__all__ = [
    'plot_covariance_ellipse',
    'plot_uncertainty',
    'plot_state_bounds',
    'plot_consistency',
]
