"""
Covariance and uncertainty visualization.

Functions for plotting uncertainty ellipses, n-sigma bands around state
estimates, and NEES/NIS consistency against chi-square bounds.
"""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import Ellipse

from ..metrics.performance import chi2_bounds


def _finish(fig, save_path, show):
    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight')

    if show:
        plt.show()


def plot_covariance_ellipse(mean, cov, n_std=3.0, ax=None, **kwargs):
    """
    Plot covariance ellipse for 2D distribution.

    Parameters
    ----------
    mean : array-like
        Mean of distribution [x, y]
    cov : np.ndarray
        2x2 covariance matrix
    n_std : float, optional
        Number of standard deviations for ellipse (default: 3-sigma)
    ax : matplotlib.axes.Axes, optional
        Axes to plot on. If None, uses the current axes.
    **kwargs : dict
        Additional arguments passed to Ellipse patch
        (e.g., facecolor, edgecolor, alpha, linewidth)

    Returns
    -------
    matplotlib.patches.Ellipse
        The ellipse patch object
    """
    if ax is None:
        ax = plt.gca()

    cov = np.asarray(cov, dtype=float)

    eigenvalues, eigenvectors = np.linalg.eigh(cov)
    eigenvalues = np.maximum(eigenvalues, 0.0)

    # eigh sorts ascending; orient along the major axis
    angle = np.degrees(np.arctan2(eigenvectors[1, 1], eigenvectors[0, 1]))
    height, width = 2 * n_std * np.sqrt(eigenvalues)

    ellipse = Ellipse(xy=np.asarray(mean, dtype=float), width=width, height=height,
                      angle=angle, **kwargs)
    ax.add_patch(ellipse)

    return ellipse


def plot_uncertainty(states, covariances, ground_truth=None, indices=(0, 1),
                     n_std=3.0, n_ellipses=10,
                     title="State Estimation with Uncertainty",
                     figsize=(10, 8), save_path=None, show=False):
    """
    Plot a 2D track with uncertainty ellipses.

    Parameters
    ----------
    states : np.ndarray
        State estimates (N, dim_x)
    covariances : np.ndarray
        State covariances (N, dim_x, dim_x)
    ground_truth : np.ndarray, optional
        True states (N, dim_x)
    indices : tuple of int, optional
        State components used as the horizontal and vertical axes
    n_std : float, optional
        Number of standard deviations for ellipses
    n_ellipses : int, optional
        Number of ellipses to plot along the track
    title : str, optional
        Plot title
    figsize : tuple, optional
        Figure size
    save_path : str, optional
        Path to save figure
    show : bool, optional
        Whether to display the plot

    Returns
    -------
    fig, ax
        Matplotlib figure and axes
    """
    states = np.asarray(states, dtype=float)
    covariances = np.asarray(covariances, dtype=float)
    i, j = indices

    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(states[:, i], states[:, j], 'b-', linewidth=2, label='Estimate', alpha=0.8)

    if ground_truth is not None:
        ground_truth = np.asarray(ground_truth, dtype=float)
        ax.plot(ground_truth[:, i], ground_truth[:, j], 'k--',
                linewidth=1.5, label='Ground Truth', alpha=0.6)

    for k in np.linspace(0, len(states) - 1, n_ellipses, dtype=int):
        cov = covariances[k][np.ix_([i, j], [i, j])]
        plot_covariance_ellipse(states[k, [i, j]], cov, n_std=n_std, ax=ax,
                                facecolor='lightblue', edgecolor='blue',
                                alpha=0.3, linewidth=1)

    ax.set_xlabel(f'State {i}', fontsize=12)
    ax.set_ylabel(f'State {j}', fontsize=12)
    ax.set_title(title, fontsize=14)
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    ax.axis('equal')

    _finish(fig, save_path, show)

    return fig, ax


def plot_state_bounds(time, states, covariances, ground_truth=None, state_names=None,
                      n_std=3.0, title="State Estimates", figsize=(12, 8),
                      save_path=None, show=False):
    """
    Plot every state over time with an n-sigma band from the diagonal of P.

    Parameters
    ----------
    time : np.ndarray
        Time vector (N,)
    states : np.ndarray
        State estimates (N, dim_x)
    covariances : np.ndarray
        State covariances (N, dim_x, dim_x)
    ground_truth : np.ndarray, optional
        True states (N, dim_x)
    state_names : list of str, optional
        Names for each state dimension
    n_std : float, optional
        Half-width of the band in standard deviations
    title : str, optional
        Main title for figure
    figsize : tuple, optional
        Figure size
    save_path : str, optional
        Path to save figure
    show : bool, optional
        Whether to display the plot

    Returns
    -------
    fig, axes
        Matplotlib figure and flat array of axes (one per state)
    """
    states = np.asarray(states, dtype=float)
    covariances = np.asarray(covariances, dtype=float)
    dim_x = states.shape[1]

    if state_names is None:
        state_names = [f'State {i+1}' for i in range(dim_x)]

    sigma = np.sqrt(np.maximum(np.diagonal(covariances, axis1=1, axis2=2), 0.0))

    n_rows = (dim_x + 1) // 2
    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for i in range(dim_x):
        ax = axes[i]

        ax.plot(time, states[:, i], 'b-', linewidth=2, label='Estimate', alpha=0.8)
        ax.fill_between(time, states[:, i] - n_std * sigma[:, i],
                        states[:, i] + n_std * sigma[:, i],
                        color='blue', alpha=0.15, label=f'±{n_std:g}σ')

        if ground_truth is not None:
            ax.plot(time, np.asarray(ground_truth)[:, i], 'k--', linewidth=1.5,
                    label='Ground Truth', alpha=0.6)

        ax.set_xlabel('Time (s)', fontsize=10)
        ax.set_ylabel(state_names[i], fontsize=10)
        ax.grid(True, alpha=0.3)
        ax.legend(fontsize=8)

    # Remove extra subplot if dim_x is odd
    if dim_x % 2 == 1:
        fig.delaxes(axes[-1])
        axes = axes[:-1]

    fig.suptitle(title, fontsize=14)
    _finish(fig, save_path, show)

    return fig, axes


def plot_consistency(values, dof, kind='NEES', confidence=0.95,
                     figsize=(12, 6), save_path=None, show=False):
    """
    Plot NEES or NIS values with chi-square confidence bounds.

    Parameters
    ----------
    values : np.ndarray
        NEES or NIS values over time (N,)
    dof : int
        Degrees of freedom (dim_x for NEES, dim_z for NIS)
    kind : str, optional
        'NEES' or 'NIS', used for labels
    confidence : float, optional
        Confidence level for bounds
    figsize : tuple, optional
        Figure size
    save_path : str, optional
        Path to save figure
    show : bool, optional
        Whether to display the plot

    Returns
    -------
    fig, ax
        Matplotlib figure and axes

    Raises
    ------
    ValueError
        If kind is not 'NEES' or 'NIS'
    """
    if kind not in ('NEES', 'NIS'):
        raise ValueError(f"kind must be 'NEES' or 'NIS', got {kind!r}")

    fig, ax = plt.subplots(figsize=figsize)

    steps = np.arange(len(values))
    lower, upper = chi2_bounds(dof, confidence)

    ax.plot(steps, values, 'b-', linewidth=1.5, alpha=0.7, label=kind)
    ax.axhline(dof, color='k', linestyle='--', linewidth=2, label=f'Expected ({dof})')
    ax.axhline(lower, color='r', linestyle=':', linewidth=1.5,
               label=f'{confidence*100:.0f}% Bounds')
    ax.axhline(upper, color='r', linestyle=':', linewidth=1.5)
    ax.fill_between(steps, lower, upper, alpha=0.1, color='red')

    ax.set_xlabel('Time Step', fontsize=12)
    ax.set_ylabel(kind, fontsize=12)
    ax.set_title(f'{kind} Consistency Test', fontsize=14)
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)

    _finish(fig, save_path, show)

    return fig, ax
