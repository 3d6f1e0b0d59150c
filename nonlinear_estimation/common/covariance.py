"""
Covariance matrix construction helpers.
"""

import numpy as np


def make_cov_matrix(std_devs):
    """
    Build a diagonal covariance matrix from standard deviations.

    Parameters
    ----------
    std_devs : array_like
        Standard deviation of each component (n,)

    Returns
    -------
    np.ndarray
        Covariance matrix diag(std_devs**2) of shape (n, n)

    Examples
    --------
    >>> make_cov_matrix([0.1, 2.0])
    array([[0.01, 0.  ],
           [0.  , 4.  ]])
    """
    std_devs = np.asarray(std_devs, dtype=float)
    return np.diag(std_devs ** 2)
