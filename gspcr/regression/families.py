"""
Outcome families for the GSPCR outcome model.

Each family encodes the outcome, fits the regression of the outcome on the
component scores (statsmodels), fits the intercept-only baseline in closed
form, and evaluates predictions and log-likelihoods on new rows so that fit
measures can be computed on held-out folds.

Null models use the same parameterization as the full model with an
intercept-only design, so ``predict`` and ``loglike`` share one code path.
"""

import warnings

import numpy as np
import statsmodels.api as sm
from scipy import stats
from scipy.special import expit, logit, softmax
from statsmodels.miscmodels.ordinal_model import OrderedModel
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from ..exceptions import CellFitError, GSPCRConfigurationError
from ..variables import VariableType, categorical_codes

_EPS = np.finfo(float).eps


def _as_components(Z, n_obs):
    if Z is None:
        return np.empty((n_obs, 0))
    Z = np.asarray(Z, dtype=float)
    if Z.ndim == 1:
        Z = Z.reshape(-1, 1)
    return Z


def _design(Z):
    """Prepend an intercept column to the component scores."""
    return np.column_stack([np.ones(Z.shape[0]), Z])


class OutcomeFit:
    """An outcome model fitted on (training) component scores.

    Parameters
    ----------
    family : Family
        Family that produced the fit.
    params : ndarray
        Estimated parameters in the family's parameterization.
    n_params : int
        Number of estimated parameters (used by AIC/BIC).
    n_obs : int
        Number of training observations.
    scale : float or None
        Dispersion (gaussian MLE variance), None for other families.
    is_null : bool
        True for the intercept-only model, which ignores component columns.
    converged : bool
        Whether the optimizer reported convergence.
    result : statsmodels results object or None
        Underlying statsmodels fit (None for closed-form null models).
    """

    def __init__(self, family, params, n_params, n_obs, scale=None,
                 is_null=False, converged=True, result=None):
        self.family = family
        self.params = params
        self.n_params = n_params
        self.n_obs = n_obs
        self.scale = scale
        self.is_null = is_null
        self.converged = converged
        self.result = result

    def predict(self, Z):
        """Expected outcome for each row of ``Z``.

        Means for gaussian/poisson, success probabilities for binomial and
        an (n, J) probability matrix for categorical families.
        """
        Z = _as_components(Z, 0)
        if self.is_null:
            Z = Z[:, :0]
        return self.family.mean(self, Z)

    def loglike(self, y, Z):
        """Log-likelihood of ``y`` given ``Z`` under the fitted parameters."""
        y = np.asarray(y)
        Z = _as_components(Z, len(y))
        return float(np.sum(self.family.logpdf(self, y, self.predict(Z))))

    def residuals(self, y, Z):
        """Response residuals ``y - E[y]``.

        For categorical families this is the indicator matrix minus the
        predicted probabilities.
        """
        y = np.asarray(y)
        mu = self.predict(_as_components(Z, len(y)))
        if mu.ndim == 2:
            indicators = np.zeros_like(mu)
            indicators[np.arange(len(y)), y.astype(int)] = 1.0
            return indicators - mu
        return y - mu


class Family:
    """Base class for outcome families.

    Parameters
    ----------
    max_iter : int, default=100
        Maximum optimizer iterations for iterative fits.
    """

    name = None
    outcome_type = None

    def __init__(self, max_iter=100):
        self.max_iter = max_iter
        self.levels_ = None

    @property
    def n_levels(self):
        return None if self.levels_ is None else len(self.levels_)

    def encode(self, y):
        """Validate ``y`` and return it as a float array."""
        y = np.asarray(y)
        if y.ndim != 1:
            raise GSPCRConfigurationError("y must be 1-dimensional")
        try:
            y = y.astype(float)
        except (TypeError, ValueError):
            raise GSPCRConfigurationError(
                f"The {self.name} family needs a numeric outcome"
            ) from None
        if not np.all(np.isfinite(y)):
            raise GSPCRConfigurationError("Missing or non-finite values in y are not supported")
        return y

    def fit(self, y, Z, check_convergence=True):
        """Fit the outcome on an intercept plus the columns of ``Z``.

        With ``check_convergence=False`` a fit whose optimizer stopped early is
        returned (``fit.converged`` is False) instead of raising.
        """
        y = np.asarray(y, dtype=float)
        Z = _as_components(Z, len(y))
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                fit = self._fit(y, Z)
        except (np.linalg.LinAlgError, ValueError, PerfectSeparationError) as e:
            raise CellFitError(f"{self.name} fit failed: {e}") from e

        if check_convergence and not fit.converged:
            raise CellFitError(f"{self.name} fit did not converge")
        if not np.all(np.isfinite(fit.params)):
            raise CellFitError(f"{self.name} fit produced non-finite parameters")
        return fit

    def fit_null(self, y):
        """Intercept-only model (closed-form maximum likelihood)."""
        raise NotImplementedError

    def _fit(self, y, Z):
        raise NotImplementedError

    def mean(self, fit, Z):
        raise NotImplementedError

    def logpdf(self, fit, y, mu):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(max_iter={self.max_iter})"


class GaussianFamily(Family):
    """Linear model (OLS); held-out likelihoods use the training MLE variance."""

    name = 'gaussian'
    outcome_type = VariableType.CONTINUOUS

    def encode(self, y):
        y = super().encode(y)
        if np.var(y) == 0:
            raise GSPCRConfigurationError("The outcome is constant")
        return y

    def _fit(self, y, Z):
        result = sm.OLS(y, _design(Z)).fit()
        scale = result.ssr / len(y)
        if scale <= 0:
            raise CellFitError("gaussian fit has zero residual variance")
        return OutcomeFit(self, np.asarray(result.params), n_params=Z.shape[1] + 1,
                          n_obs=len(y), scale=scale, result=result)

    def fit_null(self, y):
        y = np.asarray(y, dtype=float)
        scale = np.var(y)
        if scale <= 0:
            raise CellFitError("outcome is constant in the training rows")
        return OutcomeFit(self, np.array([np.mean(y)]), n_params=1, n_obs=len(y),
                          scale=scale, is_null=True)

    def mean(self, fit, Z):
        return _design(Z) @ fit.params

    def logpdf(self, fit, y, mu):
        return stats.norm.logpdf(y, loc=mu, scale=np.sqrt(fit.scale))


class BinomialFamily(Family):
    """Logistic regression for a two-level outcome."""

    name = 'binomial'
    outcome_type = VariableType.BINARY

    def encode(self, y):
        codes, levels = categorical_codes(y)
        if len(levels) != 2:
            raise GSPCRConfigurationError(
                f"The binomial family needs exactly 2 outcome levels, got {len(levels)}"
            )
        self.levels_ = levels
        return codes.astype(float)

    def _fit(self, y, Z):
        result = sm.Logit(y, _design(Z)).fit(disp=0, maxiter=self.max_iter)
        return OutcomeFit(self, np.asarray(result.params), n_params=Z.shape[1] + 1,
                          n_obs=len(y), converged=result.mle_retvals['converged'],
                          result=result)

    def fit_null(self, y):
        p = np.mean(y)
        if p <= 0 or p >= 1:
            raise CellFitError("an outcome level is absent from the training rows")
        return OutcomeFit(self, np.array([logit(p)]), n_params=1, n_obs=len(y),
                          is_null=True)

    def mean(self, fit, Z):
        return expit(_design(Z) @ fit.params)

    def logpdf(self, fit, y, mu):
        return stats.bernoulli.logpmf(y, np.clip(mu, _EPS, 1 - _EPS))


class PoissonFamily(Family):
    """Poisson regression (log link) for count outcomes."""

    name = 'poisson'
    outcome_type = VariableType.CONTINUOUS

    def encode(self, y):
        y = super().encode(y)
        if np.any(y < 0) or np.any(y != np.round(y)):
            raise GSPCRConfigurationError(
                "The poisson family needs non-negative integer counts"
            )
        return y

    def _fit(self, y, Z):
        result = sm.Poisson(y, _design(Z)).fit(disp=0, maxiter=self.max_iter)
        return OutcomeFit(self, np.asarray(result.params), n_params=Z.shape[1] + 1,
                          n_obs=len(y), converged=result.mle_retvals['converged'],
                          result=result)

    def fit_null(self, y):
        mu = np.mean(y)
        if mu <= 0:
            raise CellFitError("all counts are zero in the training rows")
        return OutcomeFit(self, np.array([np.log(mu)]), n_params=1, n_obs=len(y),
                          is_null=True)

    def mean(self, fit, Z):
        return np.exp(_design(Z) @ fit.params)

    def logpdf(self, fit, y, mu):
        return stats.poisson.logpmf(y, mu)


class _CategoricalFamily(Family):
    """Shared encoding and likelihood for multi-level outcomes."""

    ordered = False

    def encode(self, y):
        codes, levels = categorical_codes(y, ordered=self.ordered)
        if len(levels) < 2:
            raise GSPCRConfigurationError(
                f"The {self.name} family needs at least 2 outcome levels"
            )
        self.levels_ = levels
        return codes.astype(float)

    def _check_levels(self, y):
        counts = np.bincount(y.astype(int), minlength=self.n_levels)
        if np.any(counts == 0):
            raise CellFitError("an outcome level is absent from the training rows")
        return counts

    def logpdf(self, fit, y, mu):
        y = np.asarray(y).astype(int)
        return np.log(np.clip(mu[np.arange(len(y)), y], _EPS, 1.0))


class MultinomialFamily(_CategoricalFamily):
    """Baseline-category (multinomial) logit for nominal outcomes."""

    name = 'multinomial'
    outcome_type = VariableType.NOMINAL

    def _fit(self, y, Z):
        self._check_levels(y)
        result = sm.MNLogit(y, _design(Z)).fit(disp=0, maxiter=self.max_iter)
        return OutcomeFit(self, np.asarray(result.params),
                          n_params=(Z.shape[1] + 1) * (self.n_levels - 1),
                          n_obs=len(y), converged=result.mle_retvals['converged'],
                          result=result)

    def fit_null(self, y):
        counts = self._check_levels(y)
        p = counts / counts.sum()
        params = np.log(p[1:] / p[0]).reshape(1, -1)
        return OutcomeFit(self, params, n_params=self.n_levels - 1, n_obs=len(y),
                          is_null=True)

    def mean(self, fit, Z):
        eta = _design(Z) @ fit.params
        eta = np.column_stack([np.zeros(len(eta)), eta])
        return softmax(eta, axis=1)


class CumulativeFamily(_CategoricalFamily):
    """Proportional-odds (cumulative logit) model for ordinal outcomes."""

    name = 'cumulative'
    outcome_type = VariableType.ORDINAL
    ordered = True

    def _fit(self, y, Z):
        self._check_levels(y)
        if Z.shape[1] == 0:
            return self.fit_null(y)
        result = OrderedModel(y.astype(int), Z, distr='logit').fit(
            method='bfgs', disp=False, maxiter=self.max_iter
        )
        return OutcomeFit(self, np.asarray(result.params),
                          n_params=Z.shape[1] + self.n_levels - 1,
                          n_obs=len(y), converged=result.mle_retvals['converged'],
                          result=result)

    def fit_null(self, y):
        counts = self._check_levels(y)
        return OutcomeFit(self, counts / counts.sum(), n_params=self.n_levels - 1,
                          n_obs=len(y), is_null=True)

    def mean(self, fit, Z):
        if fit.is_null:
            return np.tile(fit.params, (Z.shape[0], 1))
        return np.asarray(fit.result.model.predict(fit.params, exog=Z))


FAMILIES = {
    'gaussian': GaussianFamily,
    'binomial': BinomialFamily,
    'poisson': PoissonFamily,
    'multinomial': MultinomialFamily,
    'cumulative': CumulativeFamily,
}

FAMILY_ALIASES = {
    'baseline': 'multinomial',
    'ordinal': 'cumulative',
}


def get_family(family, **kwargs):
    """Get a new family instance by name, or pass an instance through.

    Parameters
    ----------
    family : str or Family
        One of 'gaussian', 'binomial', 'poisson', 'multinomial' ('baseline'),
        'cumulative' ('ordinal'), or a ``Family`` instance.
    **kwargs
        Passed to the family constructor (e.g. ``max_iter``).

    Raises
    ------
    GSPCRConfigurationError
        If ``family`` is not a recognized name.

    Examples
    --------
    >>> get_family('gaussian')
    GaussianFamily(max_iter=100)
    """
    if isinstance(family, Family):
        return family

    name = FAMILY_ALIASES.get(str(family).lower(), str(family).lower())
    if name not in FAMILIES:
        valid_names = list(FAMILIES) + list(FAMILY_ALIASES)
        raise GSPCRConfigurationError(
            f"Unknown family '{family}'. Use one of {valid_names}."
        )
    return FAMILIES[name](**kwargs)
