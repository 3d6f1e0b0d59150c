"""
Discretization methods for continuous-time dynamics and noise.

Provides a Runge-Kutta 4th order (RK4) step for propagating continuous-time
dynamics, and conversions of continuous-time system and noise covariance
matrices into their discrete-time equivalents for a given timestep.
"""

import numpy as np
from scipy.linalg import expm


def rk4_step(f, x, u, dt):
    """
    Runge-Kutta 4th order step for continuous dynamics.

    The control input is held constant over the step.

    Parameters
    ----------
    f : callable
        Continuous dynamics function f(x, u) returning dx/dt
    x : np.ndarray
        Current state vector
    u : np.ndarray
        Control input vector
    dt : float
        Time step

    Returns
    -------
    np.ndarray
        Next state x_{k+1}

    Notes
    -----
    The RK4 method evaluates the dynamics at four points:
        k1 = f(x, u)
        k2 = f(x + dt/2 * k1, u)
        k3 = f(x + dt/2 * k2, u)
        k4 = f(x + dt * k3, u)
        x_{k+1} = x + dt/6 * (k1 + 2*k2 + 2*k3 + k4)
    """
    x = np.asarray(x, dtype=float)

    k1 = np.asarray(f(x, u), dtype=float)
    k2 = np.asarray(f(x + 0.5 * dt * k1, u), dtype=float)
    k3 = np.asarray(f(x + 0.5 * dt * k2, u), dtype=float)
    k4 = np.asarray(f(x + dt * k3, u), dtype=float)

    return x + (dt / 6.0) * (k1 + 2*k2 + 2*k3 + k4)


def discretize_a(cont_A, dt):
    """
    Discretize a continuous system matrix: A_d = exp(A * dt).

    Parameters
    ----------
    cont_A : np.ndarray
        Continuous system matrix (n, n)
    dt : float
        Time step

    Returns
    -------
    np.ndarray
        Discrete system matrix (n, n)
    """
    return expm(np.asarray(cont_A, dtype=float) * dt)


def discretize_ab(cont_A, cont_B, dt):
    """
    Discretize a continuous system and input matrix pair.

    Uses the block matrix exponential
        exp([[A, B], [0, 0]] * dt) = [[A_d, B_d], [0, I]]

    Parameters
    ----------
    cont_A : np.ndarray
        Continuous system matrix (n, n)
    cont_B : np.ndarray
        Continuous input matrix (n, m)
    dt : float
        Time step

    Returns
    -------
    disc_A : np.ndarray
        Discrete system matrix (n, n)
    disc_B : np.ndarray
        Discrete input matrix (n, m)
    """
    cont_A = np.asarray(cont_A, dtype=float)
    cont_B = np.asarray(cont_B, dtype=float)
    n = cont_A.shape[0]
    m = cont_B.shape[1]

    M = np.zeros((n + m, n + m))
    M[:n, :n] = cont_A
    M[:n, n:] = cont_B
    phi = expm(M * dt)

    return phi[:n, :n], phi[:n, n:]


def discretize_aq(cont_A, cont_Q, dt):
    """
    Discretize a system matrix and process noise covariance (Van Loan).

    Exact conversion through the matrix exponential of
        M = [[-A, Q], [0, A^T]] * dt
    whose upper-right block Phi12 and lower-right block Phi22 give
        A_d = Phi22^T,  Q_d = A_d @ Phi12

    Parameters
    ----------
    cont_A : np.ndarray
        Continuous system matrix (n, n)
    cont_Q : np.ndarray
        Continuous process noise covariance (n, n)
    dt : float
        Time step

    Returns
    -------
    disc_A : np.ndarray
        Discrete system matrix (n, n)
    disc_Q : np.ndarray
        Discrete process noise covariance (n, n), symmetric
    """
    cont_A = np.asarray(cont_A, dtype=float)
    Q = np.asarray(cont_Q, dtype=float)
    Q = (Q + Q.T) / 2.0
    n = cont_A.shape[0]

    M = np.zeros((2*n, 2*n))
    M[:n, :n] = -cont_A
    M[:n, n:] = Q
    M[n:, n:] = cont_A.T
    phi = expm(M * dt)

    phi12 = phi[:n, n:]
    phi22 = phi[n:, n:]

    disc_A = phi22.T
    disc_Q = disc_A @ phi12

    return disc_A, (disc_Q + disc_Q.T) / 2.0


def discretize_aq_taylor(cont_A, cont_Q, dt):
    """
    Discretize a system matrix and process noise covariance (Taylor series).

    Approximates the Van Loan block Phi12 with a truncated Taylor series
    instead of a full 2n x 2n matrix exponential. Five terms are kept, which
    is plenty for control-loop timesteps.

    Parameters
    ----------
    cont_A : np.ndarray
        Continuous system matrix (n, n)
    cont_Q : np.ndarray
        Continuous process noise covariance (n, n)
    dt : float
        Time step

    Returns
    -------
    disc_A : np.ndarray
        Discrete system matrix (n, n)
    disc_Q : np.ndarray
        Discrete process noise covariance (n, n), symmetric

    Notes
    -----
    With T_1 = Q and T_i = -A T_{i-1} + Q (A^T)^{i-1}:
        Phi12 = sum_{i=1}^{5} T_i dt^i / i!
        Q_d = exp(A dt) Phi12
    """
    cont_A = np.asarray(cont_A, dtype=float)
    Q = np.asarray(cont_Q, dtype=float)
    Q = (Q + Q.T) / 2.0

    last_term = Q
    last_coeff = dt

    # (A^T)^i
    Atn = cont_A.T

    phi12 = last_term * last_coeff

    for i in range(2, 6):
        last_term = -cont_A @ last_term + Q @ Atn
        last_coeff *= dt / float(i)

        phi12 = phi12 + last_term * last_coeff

        Atn = Atn @ cont_A.T

    disc_A = discretize_a(cont_A, dt)
    disc_Q = disc_A @ phi12

    return disc_A, (disc_Q + disc_Q.T) / 2.0


def discretize_r(cont_R, dt):
    """
    Discretize a continuous measurement noise covariance: R_d = R / dt.

    Parameters
    ----------
    cont_R : np.ndarray
        Continuous measurement noise covariance (m, m)
    dt : float
        Time step

    Returns
    -------
    np.ndarray
        Discrete measurement noise covariance (m, m)
    """
    return np.asarray(cont_R, dtype=float) / dt
