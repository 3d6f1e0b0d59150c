"""
Nonlinear State Estimation Library

A sigma-point state estimator for robotic control loops. Tracks the state
of a system described by continuous-time dynamics f(x, u) and a measurement
model h(x, u) with an Unscented Kalman Filter (UKF).

License: MIT
"""

__version__ = "1.0.0"

from .filters.unscented import UnscentedKalmanFilter, MerweScaledSigmaPoints, unscented_transform

__all__ = [
    'UnscentedKalmanFilter',
    'MerweScaledSigmaPoints',
    'unscented_transform',
]
