"""
Result containers for GSPCR cross-validation.

These classes hold the per-fold results cube, its aggregation over folds and
the selected solutions, for use by estimators, plots and reports.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, Tuple

import numpy as np
import pandas as pd


class CellStatus(IntEnum):
    """Outcome of one (fold, threshold, Q) cell."""
    OK = 0
    SKIPPED = 1  # retained-feature count outside the band, or Q > retained predictors
    FAILED = 2   # fit did not converge or the fold was degenerate


@dataclass
class SolutionSurface:
    """Mean and standard error of the fit measure per (threshold, Q) cell.

    Cells with an undefined value in any fold are NaN.
    """
    mean: np.ndarray
    se: np.ndarray
    component_range: Tuple[int, ...]

    @property
    def defined(self) -> np.ndarray:
        """Boolean mask of cells that may be selected."""
        return np.isfinite(self.mean)

    @property
    def n_defined(self) -> int:
        return int(np.sum(self.defined))

    def to_frame(self, thr_values=None) -> pd.DataFrame:
        """Long-format DataFrame with one row per (threshold, Q) cell."""
        n_thr, n_q = self.mean.shape
        thr_number, q_index = np.meshgrid(np.arange(n_thr), np.arange(n_q), indexing='ij')
        df = pd.DataFrame({
            'thr_number': thr_number.ravel(),
            'Q': np.asarray(self.component_range)[q_index.ravel()],
            'mean': self.mean.ravel(),
            'se': self.se.ravel(),
        })
        if thr_values is not None:
            df.insert(1, 'thr_value', np.asarray(thr_values)[df['thr_number']])
        return df


@dataclass
class ResultsCube:
    """Fit-measure value of every (fold, threshold, Q) cell.

    ``values`` holds raw measure values (NaN when undefined), ``status`` the
    matching ``CellStatus`` codes and ``fold_thresholds`` the threshold grid
    each fold used. A fold's slab is committed exactly once.
    """
    values: np.ndarray
    status: np.ndarray
    fold_thresholds: np.ndarray
    component_range: Tuple[int, ...]
    _committed: np.ndarray = field(default=None, repr=False)

    @classmethod
    def empty(cls, n_folds, n_thresholds, component_range):
        shape = (n_folds, n_thresholds, len(component_range))
        return cls(
            values=np.full(shape, np.nan),
            status=np.full(shape, CellStatus.FAILED, dtype=np.int8),
            fold_thresholds=np.full((n_folds, n_thresholds), np.nan),
            component_range=tuple(component_range),
            _committed=np.zeros(n_folds, dtype=bool),
        )

    @property
    def n_folds(self) -> int:
        return self.values.shape[0]

    def commit(self, fold, values, status, thresholds):
        """Write the results of one fold."""
        if self._committed[fold]:
            raise RuntimeError(f"Results for fold {fold} were already committed")
        self.values[fold] = values
        self.status[fold] = status
        self.fold_thresholds[fold] = thresholds
        self._committed[fold] = True

    def aggregate(self) -> SolutionSurface:
        """Mean and standard error over the fold axis.

        SE is the sample standard deviation over folds divided by sqrt(K);
        with a single fold it is 0 for every defined cell.
        """
        mean = self.values.mean(axis=0)
        if self.n_folds > 1:
            se = self.values.std(axis=0, ddof=1) / np.sqrt(self.n_folds)
        else:
            se = np.where(np.isfinite(mean), 0.0, np.nan)
        return SolutionSurface(mean=mean, se=se, component_range=self.component_range)

    def to_frame(self) -> pd.DataFrame:
        """Long-format DataFrame with one row per (fold, threshold, Q) cell."""
        n_folds, n_thr, n_q = self.values.shape
        fold, thr, q_index = np.meshgrid(
            np.arange(n_folds), np.arange(n_thr), np.arange(n_q), indexing='ij'
        )
        return pd.DataFrame({
            'fold': fold.ravel(),
            'thr_number': thr.ravel(),
            'thr_value': self.fold_thresholds[fold.ravel(), thr.ravel()],
            'Q': np.asarray(self.component_range)[q_index.ravel()],
            'value': self.values.ravel(),
            'status': [CellStatus(s).name for s in self.status.ravel()],
        })


@dataclass
class GSPCRSolution:
    """Everything produced by ``cv_gspcr``.

    Attributes
    ----------
    cube : ResultsCube
        Per-fold fit-measure values.
    surface : SolutionSurface
        Mean / SE over folds.
    sol_table : pd.DataFrame
        Rows 'standard' and (optionally) 'oneSE'; columns thr_value,
        thr_number, Q.
    thr_values : ndarray
        Threshold grid computed on the full data; ``thr_value`` in the
        solution table is taken from it.
    scores : ndarray
        Association scores on the full data.
    fold_ids : ndarray
        Fold assignment.
    fit_measure : str
    threshold_type : str
    family : str
    orientation : int
        +1 if higher measure values are better, -1 otherwise.
    feature_names : ndarray or None
    """
    cube: ResultsCube
    surface: SolutionSurface
    sol_table: pd.DataFrame
    thr_values: np.ndarray
    scores: np.ndarray
    fold_ids: np.ndarray
    fit_measure: str
    threshold_type: str
    family: str
    orientation: int
    feature_names: Optional[np.ndarray] = None
    config: Any = None

    @property
    def component_range(self) -> Tuple[int, ...]:
        return self.surface.component_range

    @property
    def standard(self) -> Tuple[float, int, int]:
        """(threshold value, threshold index, Q) of the standard solution."""
        row = self.sol_table.loc['standard']
        return float(row['thr_value']), int(row['thr_number']), int(row['Q'])

    @property
    def one_se(self) -> Optional[Tuple[float, int, int]]:
        """(threshold value, threshold index, Q) of the 1-SE solution, if computed."""
        if 'oneSE' not in self.sol_table.index:
            return None
        row = self.sol_table.loc['oneSE']
        return float(row['thr_value']), int(row['thr_number']), int(row['Q'])

    def active_set(self, rule='standard'):
        """Names (or indices) of the predictors retained by a selected solution."""
        row = self.sol_table.loc[rule]
        active = np.flatnonzero(self.scores > row['thr_value'])
        if self.feature_names is None:
            return active
        return self.feature_names[active]

    def to_frame(self) -> pd.DataFrame:
        """Solution surface as a long DataFrame with full-data threshold values."""
        return self.surface.to_frame(self.thr_values)
