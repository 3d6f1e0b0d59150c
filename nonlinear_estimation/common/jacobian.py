"""
Numerical Jacobians by central differences.

Used where a closed-form Jacobian is not available, e.g. to linearize a
user-supplied continuous dynamics function f(x, u) for noise discretization.
"""

import numpy as np

EPSILON = 1e-5


def numerical_jacobian(f, x, eps=EPSILON):
    """
    Jacobian of a vector-valued function of one vector argument.

    Parameters
    ----------
    f : callable
        Function f(x) -> np.ndarray (m,)
    x : np.ndarray
        Point at which to differentiate (n,)
    eps : float, optional
        Perturbation applied to each component

    Returns
    -------
    np.ndarray
        Jacobian df/dx of shape (m, n)
    """
    x = np.asarray(x, dtype=float)
    n = x.shape[0]

    if n == 0:
        return np.zeros((np.asarray(f(x)).shape[0], 0))

    columns = []
    for i in range(n):
        dx_plus = x.copy()
        dx_plus[i] += eps
        dx_minus = x.copy()
        dx_minus[i] -= eps
        columns.append((np.asarray(f(dx_plus)) - np.asarray(f(dx_minus))) / (2.0 * eps))

    return np.column_stack(columns)


def numerical_jacobian_x(f, x, u):
    """
    Jacobian of f(x, u) with respect to the state x.

    Parameters
    ----------
    f : callable
        Function f(x, u) -> np.ndarray
    x : np.ndarray
        State vector (n,)
    u : np.ndarray
        Control input vector

    Returns
    -------
    np.ndarray
        Jacobian df/dx (m, n)
    """
    return numerical_jacobian(lambda x_: f(x_, u), x)


def numerical_jacobian_u(f, x, u):
    """
    Jacobian of f(x, u) with respect to the control input u.

    Parameters
    ----------
    f : callable
        Function f(x, u) -> np.ndarray
    x : np.ndarray
        State vector
    u : np.ndarray
        Control input vector (p,)

    Returns
    -------
    np.ndarray
        Jacobian df/du (m, p)
    """
    return numerical_jacobian(lambda u_: f(x, u_), u)
