"""
Performance metrics for evaluating state estimation quality.

Includes RMSE, MAE, NEES and NIS, plus chi-square acceptance bounds for the
consistency tests.
"""

import numpy as np
from scipy.stats import chi2


def rmse(estimates, ground_truth, axis=0):
    """
    Root Mean Square Error.

    Parameters
    ----------
    estimates : np.ndarray
        Estimated states (N, dim) or (N,)
    ground_truth : np.ndarray
        True states (N, dim) or (N,)
    axis : int, optional
        Axis along which to compute RMSE

    Returns
    -------
    float or np.ndarray
        RMSE value(s)
    """
    errors = np.asarray(estimates, dtype=float) - np.asarray(ground_truth, dtype=float)
    return np.sqrt(np.mean(errors ** 2, axis=axis))


def mae(estimates, ground_truth, axis=0):
    """Mean Absolute Error along ``axis``."""
    errors = np.asarray(estimates, dtype=float) - np.asarray(ground_truth, dtype=float)
    return np.mean(np.abs(errors), axis=axis)


def _normalized_squares(vectors, covariances):
    vectors = np.asarray(vectors, dtype=float)
    covariances = np.asarray(covariances, dtype=float)
    # Solve against each covariance instead of inverting it
    solved = np.linalg.solve(covariances, vectors[..., np.newaxis])[..., 0]
    return np.einsum('ni,ni->n', vectors, solved)


def nees(estimates, ground_truth, covariances):
    """
    Normalized Estimation Error Squared (NEES).

    For a consistent filter, NEES follows a chi-squared distribution with
    dim_x degrees of freedom.

    Parameters
    ----------
    estimates : np.ndarray
        Estimated states (N, dim_x)
    ground_truth : np.ndarray
        True states (N, dim_x)
    covariances : np.ndarray
        Estimation error covariances (N, dim_x, dim_x)

    Returns
    -------
    np.ndarray
        NEES values for each time step (N,)
    """
    errors = np.asarray(estimates, dtype=float) - np.asarray(ground_truth, dtype=float)
    return _normalized_squares(errors, covariances)


def nis(innovations, innovation_covariances):
    """
    Normalized Innovation Squared (NIS).

    For a consistent filter, NIS follows a chi-squared distribution with
    dim_z degrees of freedom. The filter exposes ``innovation`` and ``S``
    after every correct.

    Parameters
    ----------
    innovations : np.ndarray
        Innovation vectors (N, dim_z)
    innovation_covariances : np.ndarray
        Innovation covariances (N, dim_z, dim_z)

    Returns
    -------
    np.ndarray
        NIS values for each time step (N,)
    """
    return _normalized_squares(innovations, innovation_covariances)


def chi2_bounds(dof, confidence=0.95, n_samples=1):
    """
    Two-sided chi-square acceptance interval for averaged NEES/NIS.

    Parameters
    ----------
    dof : int
        Degrees of freedom (dim_x for NEES, dim_z for NIS)
    confidence : float, optional
        Probability mass inside the interval
    n_samples : int, optional
        Number of independent runs averaged together

    Returns
    -------
    tuple of float
        (lower, upper) bounds on the averaged statistic
    """
    alpha = 1.0 - confidence
    lower = chi2.ppf(alpha / 2, dof * n_samples) / n_samples
    upper = chi2.ppf(1 - alpha / 2, dof * n_samples) / n_samples
    return float(lower), float(upper)


def compute_all_metrics(estimates, ground_truth, covariances=None,
                        innovations=None, innovation_covariances=None,
                        confidence=0.95):
    """
    Compute all available metrics.

    Parameters
    ----------
    estimates : np.ndarray
        Estimated states (N, dim_x)
    ground_truth : np.ndarray
        True states (N, dim_x)
    covariances : np.ndarray, optional
        State covariances (N, dim_x, dim_x)
    innovations : np.ndarray, optional
        Innovation vectors (N, dim_z)
    innovation_covariances : np.ndarray, optional
        Innovation covariances (N, dim_z, dim_z)
    confidence : float, optional
        Confidence level of the consistency fractions

    Returns
    -------
    dict
        Dictionary with computed metrics. ``nees_in_bounds`` / ``nis_in_bounds``
        are the fraction of time steps inside the single-run chi-square
        interval.
    """
    estimates = np.asarray(estimates, dtype=float)
    metrics = {}

    metrics['rmse'] = rmse(estimates, ground_truth, axis=0)
    metrics['mae'] = mae(estimates, ground_truth, axis=0)
    metrics['rmse_total'] = float(np.mean(metrics['rmse']))
    metrics['mae_total'] = float(np.mean(metrics['mae']))

    if covariances is not None:
        nees_vals = nees(estimates, ground_truth, covariances)
        lower, upper = chi2_bounds(estimates.shape[1], confidence)
        metrics['nees'] = nees_vals
        metrics['nees_mean'] = float(np.mean(nees_vals))
        metrics['nees_std'] = float(np.std(nees_vals))
        metrics['nees_in_bounds'] = float(np.mean((nees_vals >= lower) & (nees_vals <= upper)))

    if innovations is not None and innovation_covariances is not None:
        innovations = np.asarray(innovations, dtype=float)
        nis_vals = nis(innovations, innovation_covariances)
        lower, upper = chi2_bounds(innovations.shape[1], confidence)
        metrics['nis'] = nis_vals
        metrics['nis_mean'] = float(np.mean(nis_vals))
        metrics['nis_std'] = float(np.std(nis_vals))
        metrics['nis_in_bounds'] = float(np.mean((nis_vals >= lower) & (nis_vals <= upper)))

    return metrics


def print_metrics(metrics, filter_name="Filter"):
    """
    Print metrics in a formatted way.

    Parameters
    ----------
    metrics : dict
        Dictionary of metrics from compute_all_metrics
    filter_name : str, optional
        Name of the filter for display
    """
    print(f"\n{filter_name} Performance Metrics")
    print("=" * 50)

    if 'rmse' in metrics:
        print(f"RMSE per dimension: {metrics['rmse']}")
        print(f"Total RMSE: {metrics['rmse_total']:.6f}")

    if 'mae' in metrics:
        print(f"MAE per dimension: {metrics['mae']}")
        print(f"Total MAE: {metrics['mae_total']:.6f}")

    if 'nees_mean' in metrics:
        print(f"NEES (mean ± std): {metrics['nees_mean']:.2f} ± {metrics['nees_std']:.2f}"
              f"  [{metrics['nees_in_bounds'] * 100:.1f}% in bounds]")

    if 'nis_mean' in metrics:
        print(f"NIS (mean ± std): {metrics['nis_mean']:.2f} ± {metrics['nis_std']:.2f}"
              f"  [{metrics['nis_in_bounds'] * 100:.1f}% in bounds]")

    print("=" * 50)
