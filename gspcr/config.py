"""
Configuration of a GSPCR cross-validation run.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

from .exceptions import GSPCRConfigurationError
from .regression.families import FAMILY_ALIASES, FAMILIES
from .regression.measures import normalize_measure_name
from .screening import normalize_threshold_type


@dataclass(frozen=True)
class GSPCRConfig:
    """Every option of ``cv_gspcr`` with its default.

    Attributes
    ----------
    family : str
        Outcome family: 'gaussian', 'binomial', 'poisson', 'multinomial' or
        'cumulative'.
    fit_measure : str
        'LRT', 'PR2', 'F', 'MSE', 'AIC' or 'BIC'.
    threshold_type : str
        'raw', 'normalized', 'lls' or 'pr2'.
    n_thresholds : int
        Number of threshold values.
    component_range : tuple of int
        Candidate numbers of components Q.
    n_folds : int
        Number of folds K (1 disables cross-validation).
    min_features, max_features : int
        Band on the number of retained predictors (None = all predictors).
    one_se : bool
        Whether the solution table includes the 1-SE row.
    s0_perc : float or None
        Fudge-factor percentile for normalized scores.
    random_state : int, RandomState instance or None
        Seed of the fold assignment.
    n_jobs : int or None
        Number of folds evaluated in parallel (joblib).
    verbose : int
        0 = silent, 1 = progress and failed cells.
    """
    family: str = 'gaussian'
    fit_measure: str = 'LRT'
    threshold_type: str = 'raw'
    n_thresholds: int = 10
    component_range: Tuple[int, ...] = (1, 2, 3)
    n_folds: int = 5
    min_features: int = 1
    max_features: Optional[int] = None
    one_se: bool = True
    s0_perc: Optional[float] = None
    random_state: Any = None
    n_jobs: Optional[int] = None
    verbose: int = 0

    def validate(self, n_samples, n_features):
        """Check the options against the data size.

        Returns a copy with canonical option names and a sorted component
        range. Raises ``GSPCRConfigurationError`` on the first problem found.
        """
        if n_features < 1:
            raise GSPCRConfigurationError("X has no predictor columns")
        if int(self.n_folds) != self.n_folds or self.n_folds < 1:
            raise GSPCRConfigurationError(
                f"n_folds must be a positive integer, got {self.n_folds}"
            )
        if self.n_folds > n_samples:
            raise GSPCRConfigurationError(
                f"n_folds={self.n_folds} is larger than the number of observations "
                f"({n_samples})"
            )
        if int(self.n_thresholds) != self.n_thresholds or self.n_thresholds < 1:
            raise GSPCRConfigurationError(
                f"n_thresholds must be a positive integer, got {self.n_thresholds}"
            )

        component_range = tuple(sorted(set(int(q) for q in self.component_range)))
        if not component_range:
            raise GSPCRConfigurationError("component_range is empty")
        if component_range[0] < 1:
            raise GSPCRConfigurationError("component_range values must be >= 1")
        if component_range[-1] > n_features:
            raise GSPCRConfigurationError(
                f"component_range goes up to {component_range[-1]} components, "
                f"but X has only {n_features} predictors"
            )

        if self.min_features < 1:
            raise GSPCRConfigurationError("min_features must be >= 1")
        if self.min_features > n_features:
            raise GSPCRConfigurationError(
                f"min_features={self.min_features} exceeds the {n_features} predictors"
            )
        if self.max_features is not None and self.max_features < self.min_features:
            raise GSPCRConfigurationError(
                f"max_features={self.max_features} is smaller than "
                f"min_features={self.min_features}"
            )

        family = FAMILY_ALIASES.get(str(self.family).lower(), str(self.family).lower())
        if family not in FAMILIES:
            raise GSPCRConfigurationError(
                f"Unknown family '{self.family}'. Use {list(FAMILIES)}."
            )

        return replace(
            self,
            family=family,
            fit_measure=normalize_measure_name(self.fit_measure),
            threshold_type=normalize_threshold_type(self.threshold_type),
            n_thresholds=int(self.n_thresholds),
            n_folds=int(self.n_folds),
            component_range=component_range,
            max_features=n_features if self.max_features is None
            else min(int(self.max_features), n_features),
        )
