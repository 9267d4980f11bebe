"""
Plots of GSPCR cross-validation results.
"""

from typing import Optional, Tuple

import numpy as np

# Measures where lower values are better; flipped by default so up is better
_LOWER_IS_BETTER = ('MSE', 'AIC', 'BIC')


def plot_gspcr_cv(
    solution,
    reverse: Optional[bool] = None,
    show_se: bool = True,
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
):
    """
    Plot the cross-validated fit measure against the threshold, one line per Q.

    Parameters
    ----------
    solution : GSPCRSolution
        Output of ``cv_gspcr`` (or ``GSPCRCV.solution_``).
    reverse : bool or None, default=None
        Plot the negated measure. None reverses MSE, AIC and BIC so that
        higher is better for every measure.
    show_se : bool, default=True
        Draw ±1 SE bands.
    figsize : tuple, default=(10, 6)
        Figure size (width, height).
    save_path : str, optional
        Path to save the figure.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError("matplotlib is required for plotting. Install with: pip install matplotlib")

    if reverse is None:
        reverse = solution.fit_measure in _LOWER_IS_BETTER
    sign = -1.0 if reverse else 1.0

    surface = solution.surface
    thr_values = np.asarray(solution.thr_values)
    colors = plt.cm.viridis(np.linspace(0, 0.9, len(solution.component_range)))

    fig, ax = plt.subplots(figsize=figsize)

    for k, (q, color) in enumerate(zip(solution.component_range, colors)):
        mean = sign * surface.mean[:, k]
        ax.plot(thr_values, mean, marker='o', color=color, linewidth=2, label=f'Q = {q}')
        if show_se:
            se = surface.se[:, k]
            ax.fill_between(thr_values, mean - se, mean + se, color=color, alpha=0.15)

    markers = {'standard': ('*', '#e74c3c'), 'oneSE': ('D', '#2c3e50')}
    for rule, row in solution.sol_table.iterrows():
        k = solution.component_range.index(int(row['Q']))
        y_value = sign * surface.mean[int(row['thr_number']), k]
        marker, color = markers.get(rule, ('s', 'black'))
        ax.scatter([row['thr_value']], [y_value], marker=marker, s=200, color=color,
                   zorder=5, label=f"{rule} (Q = {int(row['Q'])})")

    ylabel = f"-{solution.fit_measure}" if reverse else solution.fit_measure
    ax.set_xlabel(f'Threshold ({solution.threshold_type})')
    ax.set_ylabel(f'Cross-validated {ylabel}')
    ax.set_title(f'GSPCR cross-validation ({solution.family} family, '
                 f'{solution.cube.n_folds} folds)')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best', fontsize=9)
    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')

    return fig
