"""
Common utilities for state estimation.

Includes covariance construction, numerical Jacobians, discretization
methods, angle handling and residual functions.
"""

from .angles import normalize_angle, angle_diff, circular_mean
from .covariance import make_cov_matrix
from .discretization import (rk4_step, discretize_a, discretize_ab, discretize_aq,
                             discretize_aq_taylor, discretize_r)
from .jacobian import numerical_jacobian, numerical_jacobian_x, numerical_jacobian_u
from .residuals import make_residual_fn, make_add_fn, make_mean_fn

__all__ = [
    'normalize_angle',
    'angle_diff',
    'circular_mean',
    'make_cov_matrix',
    'rk4_step',
    'discretize_a',
    'discretize_ab',
    'discretize_aq',
    'discretize_aq_taylor',
    'discretize_r',
    'numerical_jacobian',
    'numerical_jacobian_x',
    'numerical_jacobian_u',
    'make_residual_fn',
    'make_add_fn',
    'make_mean_fn',
]
