"""
Selection of the final (threshold, Q) configuration from a solution surface.

Both rules work on the orientation-adjusted mean (``mean * orientation``), so
higher is always better here whatever the fit measure.
"""

import numpy as np
import pandas as pd

from .exceptions import NoValidSolutionError


def _simplest(cells):
    """Cell with the smallest Q index, then the smallest threshold index."""
    cells = np.asarray(cells)
    order = np.lexsort((cells[:, 0], cells[:, 1]))
    thr_index, q_index = cells[order[0]]
    return int(thr_index), int(q_index)


def _oriented(mean, orientation):
    oriented = np.asarray(mean, dtype=float) * orientation
    defined = np.isfinite(oriented)
    if not np.any(defined):
        raise NoValidSolutionError(
            "No valid solution: every (threshold, Q) cell is undefined"
        )
    return oriented, defined


def select_standard(mean, se=None, orientation=1):
    """Cell with the best mean score.

    Ties go to the smaller Q, then to the smaller threshold index.

    Parameters
    ----------
    mean : ndarray of shape (n_thresholds, n_components)
        Mean fit measure per cell, NaN when undefined.
    se : ndarray, optional
        Unused; accepted so both rules share a signature.
    orientation : {1, -1}, default=1
        1 if higher values are better, -1 if lower values are better.

    Returns
    -------
    (thr_index, q_index) : tuple of int

    Raises
    ------
    NoValidSolutionError
        If every cell is undefined.
    """
    oriented, defined = _oriented(mean, orientation)
    best = np.max(oriented[defined])
    return _simplest(np.argwhere(defined & (oriented == best)))


def select_one_se(mean, se, orientation=1):
    """Simplest cell within one standard error of the best cell.

    Among the defined cells whose oriented mean is at least
    ``best - se_best``, pick the smallest Q, then the smallest threshold index.
    With a single defined cell this is the standard solution.

    Returns
    -------
    (thr_index, q_index) : tuple of int
    """
    oriented, defined = _oriented(mean, orientation)
    thr_index, q_index = select_standard(mean, orientation=orientation)

    se_best = np.asarray(se, dtype=float)[thr_index, q_index]
    if not np.isfinite(se_best):
        se_best = 0.0
    cutoff = oriented[thr_index, q_index] - se_best
    return _simplest(np.argwhere(defined & (oriented >= cutoff)))


def build_solution_table(surface, thr_values, orientation=1, one_se=True):
    """Solution table with rows 'standard' and, if requested, 'oneSE'.

    Parameters
    ----------
    surface : SolutionSurface
    thr_values : ndarray of shape (n_thresholds,)
        Threshold values reported for each threshold index.
    orientation : {1, -1}
    one_se : bool, default=True

    Returns
    -------
    pd.DataFrame
        Index ``['standard', 'oneSE']``, columns ``thr_value``,
        ``thr_number`` (0-based threshold index) and ``Q``.
    """
    rules = {'standard': select_standard}
    if one_se:
        rules['oneSE'] = select_one_se

    rows = {}
    for name, rule in rules.items():
        thr_index, q_index = rule(surface.mean, surface.se, orientation)
        rows[name] = {
            'thr_value': float(thr_values[thr_index]),
            'thr_number': thr_index,
            'Q': surface.component_range[q_index],
        }
    return pd.DataFrame.from_dict(rows, orient='index')[['thr_value', 'thr_number', 'Q']]
