"""
Fit measures for scoring GSPCR outcome models.

Every measure has the signature ``measure(y, Z, fit, null_fit) -> float``:
``fit`` and ``null_fit`` are estimated on the training rows and ``y``/``Z``
are the rows being scored (the held-out fold, or the training rows themselves
when cross-validation is disabled).

Measures keep their natural sign. ``measure_orientation`` gives the factor
(+1 or -1) that turns each of them into "higher is better".
"""

import numpy as np

from ..exceptions import CellFitError, GSPCRConfigurationError


def lrt(y, Z, fit, null_fit):
    """Likelihood-ratio test statistic against the intercept-only model.

    LRT = 2 * (ll_full - ll_null)

    Higher is better.
    """
    return 2 * (fit.loglike(y, Z) - null_fit.loglike(y, Z))


def pseudo_r2(y, Z, fit, null_fit):
    """Cox-Snell (generalized) pseudo-R².

    PR2 = 1 - exp(-2/n * (ll_full - ll_null))

    Higher is better. Reduces to the ordinary R² for gaussian models
    evaluated on their training rows.
    """
    n = len(y)
    return 1 - np.exp(-2 / n * (fit.loglike(y, Z) - null_fit.loglike(y, Z)))


def f_statistic(y, Z, fit, null_fit):
    """F statistic of the component model against the intercept-only model.

    F = ((RSS_null - RSS_full) / q) / (RSS_full / (n - q - 1))

    where q is the number of extra parameters of the full model. Gaussian
    family only. Higher is better.
    """
    n = len(y)
    q = fit.n_params - null_fit.n_params
    df_resid = n - q - 1
    if q <= 0 or df_resid <= 0:
        raise CellFitError(
            f"F statistic undefined for n={n} observations and q={q} components"
        )
    rss_full = np.sum(fit.residuals(y, Z) ** 2)
    rss_null = np.sum(null_fit.residuals(y, Z) ** 2)
    if rss_full <= 0:
        raise CellFitError("F statistic undefined for a perfect fit")
    return ((rss_null - rss_full) / q) / (rss_full / df_resid)


def mse(y, Z, fit, null_fit):
    """Mean squared prediction error.

    MSE = (1/n) Σ(y - ŷ)²

    Gaussian family only. Lower is better.
    """
    return np.mean(fit.residuals(y, Z) ** 2)


def aic(y, Z, fit, null_fit):
    """Akaike Information Criterion.

    AIC = 2k - 2 * ll_full, with k the number of estimated parameters.

    Lower is better.
    """
    return 2 * fit.n_params - 2 * fit.loglike(y, Z)


def bic(y, Z, fit, null_fit):
    """Bayesian Information Criterion.

    BIC = ln(n) * k - 2 * ll_full

    Lower is better. Penalizes extra components more than AIC once n > 7.
    """
    return np.log(len(y)) * fit.n_params - 2 * fit.loglike(y, Z)


# Registry of fit measures
FIT_MEASURES = {
    'LRT': lrt,
    'PR2': pseudo_r2,
    'F': f_statistic,
    'MSE': mse,
    'AIC': aic,
    'BIC': bic,
}

# +1: higher is better, -1: lower is better
MEASURE_ORIENTATION = {
    'LRT': 1,
    'PR2': 1,
    'F': 1,
    'MSE': -1,
    'AIC': -1,
    'BIC': -1,
}

# Measures defined only for a gaussian outcome
GAUSSIAN_ONLY_MEASURES = ('F', 'MSE')


def normalize_measure_name(fit_measure):
    """Return the canonical (upper case) name of a fit measure."""
    name = str(fit_measure).upper()
    if name not in FIT_MEASURES:
        raise GSPCRConfigurationError(
            f"Unknown fit_measure '{fit_measure}'. Use {list(FIT_MEASURES)}."
        )
    return name


def get_fit_measure(fit_measure):
    """Get a fit measure function by name (case-insensitive).

    Examples
    --------
    >>> get_fit_measure('bic').__name__
    'bic'
    """
    return FIT_MEASURES[normalize_measure_name(fit_measure)]


def measure_orientation(fit_measure):
    """+1 if higher values of ``fit_measure`` are better, -1 otherwise."""
    return MEASURE_ORIENTATION[normalize_measure_name(fit_measure)]


def check_measure_family(fit_measure, family):
    """Raise if ``fit_measure`` is not defined for ``family``."""
    name = normalize_measure_name(fit_measure)
    if name in GAUSSIAN_ONLY_MEASURES and family.name != 'gaussian':
        raise GSPCRConfigurationError(
            f"fit_measure='{name}' requires the gaussian family, got '{family.name}'"
        )
    return name
