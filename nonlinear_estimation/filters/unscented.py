"""
Unscented Kalman Filter (UKF) implementation.

A UKF for continuous-time dynamics f(x, u) -> dx/dt and measurement
function h(x, u) -> y. Every sigma point is advanced through the true
nonlinear dynamics with one RK4 step, so the mean is never propagated
through a linearization. A numerical Jacobian is only used to discretize
the continuous-time process noise.

Uses the Unscented Transform with Merwe's scaled sigma points.
"""

import logging

import numpy as np
from scipy.linalg import cholesky, cho_factor, cho_solve, LinAlgError

from ..common.covariance import make_cov_matrix
from ..common.discretization import rk4_step, discretize_aq_taylor, discretize_r
from ..common.jacobian import numerical_jacobian_x

logger = logging.getLogger(__name__)


class MerweScaledSigmaPoints:
    """
    Merwe's scaled sigma points.

    Generates 2n+1 sigma points and their weights for the Unscented
    Transform.

    Parameters
    ----------
    n : int
        Dimensionality of the state
    alpha : float, optional
        Spread of sigma points around mean (typically 1e-3 to 1)
    beta : float, optional
        Incorporate prior knowledge of distribution (2 is optimal for Gaussian)
    kappa : float, optional
        Secondary scaling parameter. Defaults to 3 - n.
    """

    def __init__(self, n, alpha=1e-3, beta=2.0, kappa=None):
        self.n = n
        self.alpha = alpha
        self.beta = beta

        if kappa is None:
            self.kappa = 3.0 - n
        else:
            self.kappa = kappa

        self._lambda = (alpha**2) * (n + self.kappa) - n

        self.Wm = np.full(2*n + 1, 0.5 / (n + self._lambda))
        self.Wc = np.copy(self.Wm)
        self.Wm[0] = self._lambda / (n + self._lambda)
        self.Wc[0] = self._lambda / (n + self._lambda) + (1 - alpha**2 + beta)

        logger.debug("Sigma points: n=%d alpha=%g beta=%g kappa=%g lambda=%g",
                     n, alpha, beta, self.kappa, self._lambda)

    def num_sigmas(self):
        """Number of sigma points, 2n + 1."""
        return 2*self.n + 1

    def sigma_points(self, x, P):
        """
        Generate sigma points around (x, P).

        Parameters
        ----------
        x : np.ndarray
            Mean state vector (n,)
        P : np.ndarray
            Covariance matrix (n, n)

        Returns
        -------
        np.ndarray
            Sigma points (2n+1, n), one per row. Row 0 is the mean, rows
            1..n are x + U[:, k] and rows n+1..2n are x - U[:, k], where U is
            the lower Cholesky factor of (n + lambda) P.

        Notes
        -----
        If (n + lambda) P is not positive definite (for instance the zero
        matrix after a reset) the square root falls back to an
        eigendecomposition with negative eigenvalues clipped to zero. A
        non-finite P yields NaN sigma points instead of an error.
        """
        n = self.n
        x = np.asarray(x, dtype=float)
        scaled = (self._lambda + n) * np.asarray(P, dtype=float)

        if not np.all(np.isfinite(scaled)):
            U = np.full((n, n), np.nan)
        else:
            try:
                U = cholesky(scaled, lower=True, check_finite=False)
            except LinAlgError:
                eigval, eigvec = np.linalg.eigh((scaled + scaled.T) / 2.0)
                U = eigvec * np.sqrt(np.maximum(eigval, 0.0))

        sigmas = np.empty((2*n + 1, n))
        sigmas[0] = x
        sigmas[1:n + 1] = x + U.T
        sigmas[n + 1:] = x - U.T

        return sigmas


def unscented_transform(sigmas, Wm, Wc, mean_fn=None, residual_fn=None):
    """
    Reduce sigma points to a weighted mean and covariance.

    Parameters
    ----------
    sigmas : np.ndarray
        Sigma points (2n+1, m), one per row
    Wm : np.ndarray
        Mean weights (2n+1,)
    Wc : np.ndarray
        Covariance weights (2n+1,)
    mean_fn : callable, optional
        mean_fn(sigmas, Wm) -> mean. Weighted sum if None.
    residual_fn : callable, optional
        residual_fn(a, b) -> a - b. Plain subtraction if None.

    Returns
    -------
    mean : np.ndarray
        Weighted mean (m,)
    cov : np.ndarray
        Weighted covariance (m, m)
    """
    sigmas = np.asarray(sigmas, dtype=float)

    if mean_fn is None:
        mean = np.dot(Wm, sigmas)
    else:
        mean = mean_fn(sigmas, Wm)

    diff = _residuals(sigmas, mean, residual_fn)
    cov = np.dot(diff.T * Wc, diff)

    return mean, cov


def _residuals(sigmas, mean, residual_fn):
    if residual_fn is None:
        return sigmas - mean
    return np.array([residual_fn(s, mean) for s in sigmas])


class UnscentedKalmanFilter:
    """
    Unscented Kalman Filter for continuous-time nonlinear systems.

    The user must provide:
    - Dynamics function: f(x, u) -> dx/dt
    - Measurement function: h(x, u) -> y
    - Standard deviations of the continuous-time process and measurement
      noise

    One control cycle is ``predict(u, dt)`` followed by ``correct(u, y)``.
    ``correct`` consumes the propagated sigma points ``sigmas_f`` left by the
    most recent ``predict`` for the state side of the cross covariance, while
    the measurement side is regenerated from the current estimate. Calling
    ``correct`` without a preceding ``predict`` reuses whatever ``sigmas_f``
    holds (zeros after construction or reset).

    The filter is not thread safe and never raises on numerical trouble: a
    singular innovation covariance propagates NaN into ``x`` and ``P``. Only
    malformed arguments to ``correct`` raise ``ValueError``.

    Attributes
    ----------
    dim_x : int
        Dimension of the state vector
    dim_z : int
        Dimension of the default measurement vector
    dim_u : int
        Dimension of the control input vector
    x : np.ndarray
        State estimate vector (dim_x,)
    P : np.ndarray
        Error covariance matrix (dim_x, dim_x)
    cont_Q : np.ndarray
        Continuous process noise covariance, fixed for the filter lifetime
    cont_R : np.ndarray
        Continuous measurement noise covariance, fixed for the filter lifetime
    disc_R : np.ndarray
        Discrete measurement noise covariance for the last predict timestep
    disc_A : np.ndarray
        Discrete system matrix from the last predict (informational only)
    sigmas_f : np.ndarray
        Sigma points propagated by the last predict (2*dim_x + 1, dim_x)
    innovation : np.ndarray
        y - y_hat from the last correct
    S : np.ndarray
        Innovation covariance from the last correct
    K : np.ndarray
        Kalman gain from the last correct
    condition_number : float
        Condition number of S from the last correct

    Examples
    --------
    >>> f = lambda x, u: np.array([x[1], 0.0])
    >>> h = lambda x, u: x[:1]
    >>> ukf = UnscentedKalmanFilter(f, h, [0.1, 0.1], [0.1], dt=0.1)
    >>> ukf.x = [0.0, 1.0]
    >>> ukf.P = np.eye(2) * 1e-9
    >>> ukf.predict(u=None, dt=0.1)
    >>> ukf.correct(u=None, y=np.array([0.1]))
    """

    def __init__(self, f, h, state_std_devs, measurement_std_devs, dt,
                 dim_u=0, points=None, condition_warning_threshold=1e12):
        """
        Initialize Unscented Kalman Filter.

        Parameters
        ----------
        f : callable
            Continuous dynamics f(x, u) -> dx/dt
        h : callable
            Measurement function h(x, u) -> y
        state_std_devs : array_like
            Standard deviations of the model states (dim_x,)
        measurement_std_devs : array_like
            Standard deviations of the measurements (dim_z,)
        dt : float
            Nominal discretization timestep, used for the initial disc_R
        dim_u : int, optional
            Dimension of the control input. Used when u is None.
        points : MerweScaledSigmaPoints, optional
            Sigma point generator. Defaults to alpha=1e-3, beta=2,
            kappa=3-dim_x.
        condition_warning_threshold : float, optional
            Log a warning when the innovation covariance condition number
            exceeds this value

        Raises
        ------
        ValueError
            If the standard deviations are not non-empty 1-D arrays or the
            sigma point generator has the wrong dimension
        """
        state_std_devs = np.asarray(state_std_devs, dtype=float)
        measurement_std_devs = np.asarray(measurement_std_devs, dtype=float)

        if state_std_devs.ndim != 1 or state_std_devs.size == 0:
            raise ValueError("state_std_devs must be a non-empty 1-D array")
        if measurement_std_devs.ndim != 1 or measurement_std_devs.size == 0:
            raise ValueError("measurement_std_devs must be a non-empty 1-D array")

        self.f = f
        self.h = h

        self.dim_x = state_std_devs.size
        self.dim_z = measurement_std_devs.size
        self.dim_u = dim_u

        if points is None:
            points = MerweScaledSigmaPoints(self.dim_x)
        elif points.n != self.dim_x:
            raise ValueError(f"Sigma points dimension {points.n} does not match "
                             f"state dimension {self.dim_x}")
        self.points = points

        # Noise models persist across resets
        self.cont_Q = make_cov_matrix(state_std_devs)
        self.cont_R = make_cov_matrix(measurement_std_devs)
        self.disc_R = discretize_r(self.cont_R, dt)
        self.disc_A = np.eye(self.dim_x)

        # Mean, residual and add functions (for handling angles)
        self._x_mean_fn = None
        self._z_mean_fn = None
        self._residual_x_fn = None
        self._residual_z_fn = None
        self._add_x_fn = None

        # Diagnostics from the last correct
        self.condition_warning_threshold = condition_warning_threshold
        self.innovation = np.zeros(self.dim_z)
        self.S = np.zeros((self.dim_z, self.dim_z))
        self.K = np.zeros((self.dim_x, self.dim_z))
        self.condition_number = np.nan

        self.reset()

        logger.debug("UKF initialized: dim_x=%d, dim_z=%d, dim_u=%d, dt=%g",
                     self.dim_x, self.dim_z, self.dim_u, dt)

    @property
    def x(self):
        """State estimate. Elements are read and written by indexing."""
        return self._x

    @x.setter
    def x(self, value):
        self._x = np.array(value, dtype=float).reshape(self.dim_x)

    @property
    def P(self):
        """Error covariance. Elements are read and written by indexing."""
        return self._P

    @P.setter
    def P(self, value):
        self._P = np.array(value, dtype=float).reshape(self.dim_x, self.dim_x)

    def reset(self):
        """
        Reset the estimate.

        Zeroes x, P and sigmas_f. The noise models are left untouched.
        """
        self._x = np.zeros(self.dim_x)
        self._P = np.zeros((self.dim_x, self.dim_x))
        self.sigmas_f = np.zeros((self.points.num_sigmas(), self.dim_x))

    def predict(self, u, dt):
        """
        Predict step of the UKF.

        Projects the estimate forward by dt under control input u.

        Parameters
        ----------
        u : np.ndarray or None
            Control input vector. Zeros of length dim_u if None.
        dt : float
            Timestep for this prediction

        Returns
        -------
        None
            Updates x, P, sigmas_f and disc_R in place
        """
        if u is None:
            u = np.zeros(self.dim_u)

        # Discretize Q before projecting mean and covariance forward
        cont_A = numerical_jacobian_x(self.f, self._x, u)
        self.disc_A, disc_Q = discretize_aq_taylor(cont_A, self.cont_Q, dt)

        sigmas = self.points.sigma_points(self._x, self._P)

        # Propagate every sigma point through the nonlinear dynamics
        for i, s in enumerate(sigmas):
            self.sigmas_f[i] = rk4_step(self.f, s, u, dt)

        self._x, self._P = unscented_transform(
            self.sigmas_f, self.points.Wm, self.points.Wc,
            self._x_mean_fn, self._residual_x_fn
        )

        self._P = self._P + disc_Q
        self.disc_R = discretize_r(self.cont_R, dt)

    def correct(self, u, y, h=None, R=None, z_mean_fn=None, residual_z_fn=None):
        """
        Correct step of the UKF.

        With only u and y, uses the h given at construction, the current
        disc_R and the measurement mean/residual functions set with
        set_mean_fn / set_residual_fn, unless z_mean_fn / residual_z_fn are
        passed explicitly. Passing h and R corrects against a different
        sensor set of any dimension; its mean and residual functions then
        default to plain arithmetic.

        Parameters
        ----------
        u : np.ndarray or None
            Same control input used in the predict step
        y : np.ndarray
            Measurement vector
        h : callable, optional
            Measurement function h(x, u) -> y
        R : np.ndarray, optional
            Discrete measurement noise covariance matching h
        z_mean_fn : callable, optional
            Measurement mean function for h
        residual_z_fn : callable, optional
            Measurement residual function for h

        Returns
        -------
        None
            Updates x and P in place

        Raises
        ------
        ValueError
            If h is given without R, or R is not square with the length of y
        """
        if h is None:
            h = self.h
            if z_mean_fn is None:
                z_mean_fn = self._z_mean_fn
            if residual_z_fn is None:
                residual_z_fn = self._residual_z_fn
            if R is None:
                R = self.disc_R
        elif R is None:
            raise ValueError("R must be given together with h")

        y = np.asarray(y, dtype=float)
        R = np.asarray(R, dtype=float)
        if R.shape != (y.size, y.size):
            raise ValueError(f"R has shape {R.shape}, expected ({y.size}, {y.size}) "
                             f"for a measurement of length {y.size}")

        if u is None:
            u = np.zeros(self.dim_u)

        Wm = self.points.Wm
        Wc = self.points.Wc

        # Transform sigma points of the current estimate into measurement space
        sigmas = self.points.sigma_points(self._x, self._P)
        sigmas_h = np.array([np.asarray(h(s, u), dtype=float) for s in sigmas])

        y_hat, Py = unscented_transform(sigmas_h, Wm, Wc, z_mean_fn, residual_z_fn)
        Py = Py + R

        # State side comes from the last predict, measurement side from the
        # regenerated points, paired by index
        dx = _residuals(self.sigmas_f, self._x, self._residual_x_fn)
        dz = _residuals(sigmas_h, y_hat, residual_z_fn)
        Pxy = np.dot(dx.T * Wc, dz)

        K = self._solve_gain(Pxy, Py)

        if residual_z_fn is None:
            innovation = y - y_hat
        else:
            innovation = residual_z_fn(y, y_hat)

        if self._add_x_fn is None:
            self._x = self._x + K @ innovation
        else:
            self._x = self._add_x_fn(self._x, K @ innovation)
        self._P = self._P - K @ Py @ K.T

        self.innovation = innovation
        self.S = Py
        self.K = K

    def _solve_gain(self, Pxy, Py):
        """
        K = Pxy Py^-1, via Py^T K^T = Pxy^T and a Cholesky factorization.

        A Py that cannot be factored gives a NaN gain.
        """
        if np.all(np.isfinite(Py)):
            self.condition_number = float(np.linalg.cond(Py))
        else:
            self.condition_number = np.inf

        if self.condition_number > self.condition_warning_threshold:
            logger.warning("Innovation covariance is ill-conditioned (cond=%.3e)",
                           self.condition_number)

        try:
            factor = cho_factor(Py.T, lower=True, check_finite=False)
        except LinAlgError:
            logger.warning("Innovation covariance is not positive definite, "
                           "gain set to NaN")
            return np.full(Pxy.shape, np.nan)

        return cho_solve(factor, Pxy.T, check_finite=False).T

    def set_mean_fn(self, x_mean_fn=None, z_mean_fn=None):
        """
        Set custom mean functions for state and measurement.

        Useful when states/measurements include angles.

        Parameters
        ----------
        x_mean_fn : callable, optional
            Function: x_mean_fn(sigmas, Wm) -> mean_x
        z_mean_fn : callable, optional
            Function: z_mean_fn(sigmas, Wm) -> mean_z
        """
        if x_mean_fn is not None:
            self._x_mean_fn = x_mean_fn
        if z_mean_fn is not None:
            self._z_mean_fn = z_mean_fn

    def set_residual_fn(self, residual_x_fn=None, residual_z_fn=None):
        """
        Set custom residual functions.

        Parameters
        ----------
        residual_x_fn : callable, optional
            Function: residual_x_fn(a, b) -> residual for states
        residual_z_fn : callable, optional
            Function: residual_z_fn(a, b) -> residual for measurements
        """
        if residual_x_fn is not None:
            self._residual_x_fn = residual_x_fn
        if residual_z_fn is not None:
            self._residual_z_fn = residual_z_fn

    def set_add_fn(self, add_x_fn):
        """
        Set the function applying a correction to the state.

        Parameters
        ----------
        add_x_fn : callable
            Function: add_x_fn(x, dx) -> x + dx
        """
        self._add_x_fn = add_x_fn
