"""
Sigma-point state estimation filters.

This module provides:
- Merwe's scaled sigma points
- The unscented transform
- An Unscented Kalman Filter (UKF) for continuous-time models
"""

from .unscented import UnscentedKalmanFilter, MerweScaledSigmaPoints, unscented_transform

__all__ = [
    'UnscentedKalmanFilter',
    'MerweScaledSigmaPoints',
    'unscented_transform',
]
