"""
Predictor screening and threshold grids.

The screener scores every predictor by its univariate association with the
outcome. The threshold grid turns a score vector into a sequence of cut-offs;
a predictor is retained by a threshold when its score exceeds it.
"""

import warnings

import numpy as np
import pandas as pd
from scipy import stats

from .exceptions import CellFitError, GSPCRConfigurationError
from .variables import VariableType

# Score of columns that can never be retained (zero variance, single level, ...)
DEGENERATE_SCORE = -np.inf

THRESHOLD_TYPES = ('raw', 'normalized', 'lls', 'pr2')


def linear_f_statistic(y, x):
    """F statistic of the simple linear regression of ``y`` on ``x``.

    F = r² (n - 2) / (1 - r²)
    """
    n = len(y)
    if n < 3 or np.var(x) == 0 or np.var(y) == 0:
        return DEGENERATE_SCORE
    r = np.corrcoef(x, y)[0, 1]
    if r ** 2 >= 1:
        return DEGENERATE_SCORE
    return r ** 2 * (n - 2) / (1 - r ** 2)


def anova_f_statistic(values, groups):
    """One-way ANOVA F statistic of ``values`` across the levels of ``groups``."""
    samples = [values[groups == g] for g in np.unique(groups)]
    if len(samples) < 2 or len(values) <= len(samples):
        return DEGENERATE_SCORE
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        statistic = stats.f_oneway(*samples)[0]
    return statistic if np.isfinite(statistic) else DEGENERATE_SCORE


def chi_square_statistic(y, x):
    """Pearson chi-square statistic of the ``y`` by ``x`` contingency table."""
    table = pd.crosstab(y, x)
    if min(table.shape) < 2:
        return DEGENERATE_SCORE
    statistic = stats.chi2_contingency(table.to_numpy(), correction=False)[0]
    return statistic if np.isfinite(statistic) else DEGENERATE_SCORE


def _continuous_by_discrete(y, x):
    return anova_f_statistic(y, x)


def _discrete_by_continuous(y, x):
    return anova_f_statistic(x, y)


# (outcome kind, predictor kind) -> statistic(y, x)
SCREENING_STATISTICS = {
    ('continuous', 'continuous'): linear_f_statistic,
    ('continuous', 'discrete'): _continuous_by_discrete,
    ('discrete', 'continuous'): _discrete_by_continuous,
    ('discrete', 'discrete'): chi_square_statistic,
}


def raw_scores(y, X, outcome_type, column_types):
    """Native association statistic per column, dispatched on variable kinds."""
    return np.array([
        SCREENING_STATISTICS[(outcome_type.kind, vtype.kind)](y, X[:, j])
        for j, vtype in enumerate(column_types)
    ], dtype=float)


def normalized_scores(y, X, s0_perc=None):
    """Normalized correlation scores of supervised principal components.

    For each column the slope of the simple regression of ``y`` on ``x`` is
    divided by its standard error plus a fudge factor ``s0``:

        numer = sxy / sxx
        sd = sqrt((syy / sxx - numer²) / (n - 2))
        score = |numer / (sd + s0)|

    Parameters
    ----------
    y : ndarray of shape (n_samples,)
    X : ndarray of shape (n_samples, n_features)
    s0_perc : float or None, default=None
        ``s0`` is the median of ``sd`` when None, its ``s0_perc`` quantile when
        ``0 <= s0_perc <= 1``, and 0 when ``s0_perc`` is negative.

    Returns
    -------
    ndarray of shape (n_features,)
    """
    n = len(y)
    Xc = X - X.mean(axis=0)
    yc = y - y.mean()
    sxx = np.sum(Xc ** 2, axis=0)
    sxy = Xc.T @ yc
    syy = np.sum(yc ** 2)

    valid = sxx > 0
    scores = np.full(X.shape[1], DEGENERATE_SCORE)
    if not np.any(valid) or n < 3:
        return scores

    numer = sxy[valid] / sxx[valid]
    sd = np.sqrt(np.clip(syy / sxx[valid] - numer ** 2, 0, None) / (n - 2))

    if s0_perc is None:
        fudge = np.median(sd)
    elif s0_perc >= 0:
        fudge = np.quantile(sd, s0_perc)
    else:
        fudge = 0.0

    with np.errstate(divide='ignore', invalid='ignore'):
        tt = np.abs(numer / (sd + fudge))
    scores[valid] = np.where(np.isfinite(tt), tt, DEGENERATE_SCORE)
    return scores


def _univariate_design(x, vtype):
    if vtype.is_discrete:
        dummies = pd.get_dummies(x.astype(int), drop_first=True, dtype=float)
        return dummies.to_numpy()
    return x.reshape(-1, 1)


def likelihood_scores(y, X, column_types, family, measure='lls'):
    """Scores from univariate outcome models ``y ~ x_j``.

    ``measure='lls'`` returns each model's log-likelihood, ``measure='pr2'``
    its Cox-Snell pseudo-R² against the intercept-only model. Columns whose
    model cannot be fitted get ``DEGENERATE_SCORE``.
    """
    n = len(y)
    ll_null = family.fit_null(y).loglike(y, None)
    scores = np.full(X.shape[1], DEGENERATE_SCORE)

    for j, vtype in enumerate(column_types):
        design = _univariate_design(X[:, j], vtype)
        if design.shape[1] == 0 or np.all(np.var(design, axis=0) == 0):
            continue
        try:
            ll = family.fit(y, design).loglike(y, design)
        except CellFitError:
            continue
        if measure == 'lls':
            scores[j] = ll
        else:
            scores[j] = 1 - np.exp(-2 / n * (ll - ll_null))
    return scores


def normalize_threshold_type(threshold_type):
    name = str(threshold_type).lower()
    if name not in THRESHOLD_TYPES:
        raise GSPCRConfigurationError(
            f"Unknown threshold_type '{threshold_type}'. Use {list(THRESHOLD_TYPES)}."
        )
    return name


def check_threshold_type(threshold_type, family, column_types):
    """Raise if ``threshold_type`` cannot score this outcome and these predictors."""
    name = normalize_threshold_type(threshold_type)
    if name == 'normalized':
        if family.name != 'gaussian':
            raise GSPCRConfigurationError(
                f"threshold_type='normalized' requires the gaussian family, "
                f"got '{family.name}'"
            )
        multi_level = [j for j, t in enumerate(column_types)
                       if t in (VariableType.NOMINAL, VariableType.ORDINAL)]
        if multi_level:
            raise GSPCRConfigurationError(
                "threshold_type='normalized' needs continuous or binary predictors; "
                f"columns {multi_level} are nominal or ordinal"
            )
    return name


def compute_association_scores(y, X, family, column_types, threshold_type='raw',
                               s0_perc=None):
    """Score every predictor by its association with the outcome.

    Parameters
    ----------
    y : ndarray of shape (n_samples,)
        Encoded outcome (see ``Family.encode``).
    X : ndarray of shape (n_samples, n_features)
        Encoded predictors (see ``encode_predictors``).
    family : Family
        Outcome family; its ``outcome_type`` selects the raw statistic.
    column_types : list of VariableType
        One tag per predictor column.
    threshold_type : {'raw', 'normalized', 'lls', 'pr2'}, default='raw'
        - 'raw': F statistic (continuous-continuous), one-way ANOVA F (mixed
          continuous/discrete) or Pearson chi-square (discrete-discrete)
        - 'normalized': normalized correlation (gaussian family only)
        - 'lls': log-likelihood of the univariate outcome model
        - 'pr2': Cox-Snell pseudo-R² of the univariate outcome model
    s0_perc : float or None, default=None
        Fudge-factor percentile for 'normalized'.

    Returns
    -------
    scores : ndarray of shape (n_features,)
        Higher means more strongly associated; degenerate columns hold
        ``DEGENERATE_SCORE``.
    """
    name = normalize_threshold_type(threshold_type)
    if name == 'raw':
        return raw_scores(y, X, family.outcome_type, column_types)
    if name == 'normalized':
        return normalized_scores(y, X, s0_perc=s0_perc)
    return likelihood_scores(y, X, column_types, family, measure=name)


def build_threshold_grid(scores, n_thresholds, min_features=1, max_features=None):
    """Evenly spaced thresholds between the achievable cuts of a score vector.

    The lowest threshold keeps about ``max_features`` predictors and the
    highest about ``min_features``:

        lower = quantile(scores, 1 - max_features / p)
        upper = quantile(scores, 1 - min_features / p)

    with ``p`` the number of non-degenerate predictors.

    Parameters
    ----------
    scores : ndarray of shape (n_features,)
    n_thresholds : int
        Number of grid points, both ends included.
    min_features, max_features : int
        Feature-count band; ``max_features=None`` means all predictors.

    Returns
    -------
    thresholds : ndarray of shape (n_thresholds,)
        Strictly increasing when ``n_thresholds > 1``.

    Raises
    ------
    GSPCRConfigurationError
        If no predictor is usable, the band is empty, or every score is tied.

    Examples
    --------
    >>> build_threshold_grid(np.arange(11.0), 3)
    array([0.        , 4.54545455, 9.09090909])
    """
    scores = np.asarray(scores, dtype=float)
    finite = scores[np.isfinite(scores)]
    p = len(finite)
    if p == 0:
        raise GSPCRConfigurationError("Every predictor is degenerate (no usable scores)")

    max_features = p if max_features is None else min(max_features, p)
    if min_features > max_features:
        raise GSPCRConfigurationError(
            f"min_features={min_features} exceeds the {max_features} usable predictors"
        )

    lower = np.quantile(finite, 1 - max_features / p)
    upper = np.quantile(finite, 1 - min_features / p)
    if n_thresholds > 1 and not upper > lower:
        raise GSPCRConfigurationError(
            "Cannot build an increasing threshold grid: the association scores are tied"
        )
    return np.linspace(lower, upper, int(n_thresholds))


def select_active_set(scores, threshold):
    """Indices of the predictors whose score exceeds ``threshold``."""
    return np.flatnonzero(np.asarray(scores) > threshold)
