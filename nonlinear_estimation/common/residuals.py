"""
Factories for angle-aware mean, residual and add functions.

The unscented filter averages, subtracts and adds state and measurement
vectors. When some components are angles these operations must wrap. The
functions built here plug into UnscentedKalmanFilter.set_mean_fn,
set_residual_fn and set_add_fn.
"""

import numpy as np
from .angles import normalize_angle, circular_mean


def make_residual_fn(angle_indices=None):
    """
    Create a residual function a - b that wraps the given angle components.

    Parameters
    ----------
    angle_indices : list of int, optional
        Indices of angular components (radians)

    Returns
    -------
    callable
        Residual function with signature (a, b) -> residual

    Examples
    --------
    >>> residual_fn = make_residual_fn(angle_indices=[2])
    >>> residual_fn(np.array([1.0, 2.0, 3.14]), np.array([0.5, 1.8, -3.14]))
    array([ 0.5       ,  0.2       , -0.00318531])
    """
    angle_indices = list(angle_indices or [])

    def residual(a, b):
        y = np.asarray(a, dtype=float) - np.asarray(b, dtype=float)
        for idx in angle_indices:
            y[idx] = normalize_angle(y[idx])
        return y

    return residual


def make_add_fn(angle_indices=None):
    """
    Create an add function a + b that wraps the given angle components.

    Parameters
    ----------
    angle_indices : list of int, optional
        Indices of angular components (radians)

    Returns
    -------
    callable
        Add function with signature (a, b) -> sum
    """
    angle_indices = list(angle_indices or [])

    def add(a, b):
        s = np.asarray(a, dtype=float) + np.asarray(b, dtype=float)
        for idx in angle_indices:
            s[idx] = normalize_angle(s[idx])
        return s

    return add


def make_mean_fn(angle_indices=None):
    """
    Create a weighted mean function over sigma points.

    Linear components use the plain weighted sum; angular components use the
    weighted circular mean.

    Parameters
    ----------
    angle_indices : list of int, optional
        Indices of angular components (radians)

    Returns
    -------
    callable
        Mean function with signature (sigmas, Wm) -> mean, where sigmas has
        one sigma point per row
    """
    angle_indices = list(angle_indices or [])

    def mean(sigmas, Wm):
        sigmas = np.asarray(sigmas, dtype=float)
        m = np.dot(Wm, sigmas)
        for idx in angle_indices:
            m[idx] = circular_mean(sigmas[:, idx], Wm)
        return m

    return mean
