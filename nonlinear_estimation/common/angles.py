"""
Angle utilities for state estimation.

Heading-like states and measurements live on a circle, so differences and
averages of them have to be taken across the +/-pi discontinuity.
"""

import numpy as np


def normalize_angle(angle):
    """
    Normalize angle to [-pi, pi].

    Parameters
    ----------
    angle : float or np.ndarray
        Angle(s) in radians

    Returns
    -------
    float or np.ndarray
        Normalized angle(s) in [-pi, pi]
    """
    return np.arctan2(np.sin(angle), np.cos(angle))


def angle_diff(angle1, angle2):
    """
    Smallest signed difference angle1 - angle2, in [-pi, pi].

    Examples
    --------
    >>> round(float(angle_diff(3.0, -3.0)), 4)
    -0.2832
    """
    return normalize_angle(np.asarray(angle1) - np.asarray(angle2))


def circular_mean(angles, weights=None):
    """
    Weighted circular mean of angles.

    Uses atan2(sum(w sin), sum(w cos)). Negative weights, as produced by
    scaled sigma points, are accepted.

    Parameters
    ----------
    angles : np.ndarray
        Angles in radians (N,)
    weights : np.ndarray, optional
        Weight of each angle (N,). Uniform if None.

    Returns
    -------
    float
        Mean angle in [-pi, pi]
    """
    angles = np.asarray(angles, dtype=float)
    if weights is None:
        weights = np.full(len(angles), 1.0 / len(angles))
    else:
        weights = np.asarray(weights, dtype=float)

    sin_sum = np.dot(weights, np.sin(angles))
    cos_sum = np.dot(weights, np.cos(angles))

    return np.arctan2(sin_sum, cos_sum)
