"""
GSPCR: supervised principal component regression for a fixed configuration.

This module implements the final GSPCR model: predictors are screened by their
univariate association with the outcome, the predictors whose score exceeds a
threshold are summarized by their first principal components, and the outcome
is regressed on those components with a GLM of the chosen family.

The threshold and number of components are usually chosen by ``cv_gspcr`` or
``GSPCRCV``, which refits this estimator on the full data.
"""

import copy
import warnings
from datetime import datetime
import time

import numpy as np
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.utils.validation import check_is_fitted

from ..components import ComponentExtractor
from ..exceptions import CellFitError, GSPCRConfigurationError
from ..screening import (
    DEGENERATE_SCORE,
    check_threshold_type,
    compute_association_scores,
    select_active_set,
)
from ..variables import as_frame, encode_predictors, resolve_column_types
from .families import get_family


def prepare_gspcr_data(y, X, family, column_types=None, threshold_type='raw'):
    """Validate and encode a dataset once, at the boundary.

    Parameters
    ----------
    y : array-like of shape (n_samples,)
        Outcome.
    X : array-like or DataFrame of shape (n_samples, n_features)
        Predictors, possibly of mixed types.
    family : str or Family
        Outcome family.
    column_types : None, str, list or dict, default=None
        Predictor types (see ``resolve_column_types``).
    threshold_type : str, default='raw'
        Checked against the family and predictor types.

    Returns
    -------
    y_enc : ndarray of shape (n_samples,)
        Encoded outcome (level codes for discrete families).
    X_enc : ndarray of shape (n_samples, n_features)
        Encoded predictors.
    feature_names : ndarray of str
    column_types : list of VariableType
    levels : list
        Level labels per predictor column (None for continuous columns).
    family : Family
        A copy of the family holding the outcome levels; a passed instance
        is left untouched.
    """
    frame = as_frame(X)
    if frame.shape[1] == 0:
        raise GSPCRConfigurationError("X has no predictor columns")
    y_arr = y if hasattr(y, 'dtype') and hasattr(y, 'shape') else np.asarray(y)
    if len(y_arr) != frame.shape[0]:
        raise GSPCRConfigurationError(
            f"y has {len(y_arr)} observations but X has {frame.shape[0]} rows"
        )

    types = resolve_column_types(frame, column_types)
    X_enc, feature_names, levels = encode_predictors(frame, types)

    family = copy.deepcopy(get_family(family))
    y_enc = family.encode(y_arr)
    check_threshold_type(threshold_type, family, types)
    return y_enc, X_enc, feature_names, types, levels, family


class GSPCR(BaseEstimator, RegressorMixin):
    """
    Generalized supervised principal component regression.

    Fits: screening → principal components of the retained predictors →
    GLM of the outcome on the first ``n_components`` components.

    Parameters
    ----------
    family : str or Family, default='gaussian'
        Outcome family:
        - 'gaussian': linear model
        - 'binomial': logistic regression
        - 'poisson': Poisson regression (counts)
        - 'multinomial' (or 'baseline'): baseline-category logit
        - 'cumulative' (or 'ordinal'): proportional-odds logit

    threshold : float or None, default=None
        Predictors with an association score strictly above ``threshold`` are
        retained. None retains every non-degenerate predictor.

    n_components : int, default=1
        Number of principal components used as outcome predictors.

    threshold_type : str, default='raw'
        Association score: 'raw', 'normalized', 'lls' or 'pr2'
        (see ``compute_association_scores``).

    column_types : None, str, list or dict, default=None
        Predictor types. None infers them from the data.

    s0_perc : float or None, default=None
        Fudge-factor percentile for normalized scores.

    max_iter : int, default=100
        Maximum optimizer iterations of the outcome model.

    verbose : int, default=0
        Verbosity level.

    Attributes
    ----------
    scores_ : ndarray of shape (n_features,)
        Association score of every predictor.

    active_set_ : ndarray of int
        Indices of the retained predictors.

    active_features_ : ndarray of str
        Names of the retained predictors.

    extractor_ : ComponentExtractor
        Component extraction fitted on the retained predictors.

    outcome_fit_ : OutcomeFit
        Outcome model fitted on the component scores.

    null_fit_ : OutcomeFit
        Intercept-only outcome model.

    family_ : Family
        Family instance (holds the outcome levels of discrete families).

    column_types_ : list of VariableType
        Type of every predictor.

    converged_ : bool
        Whether the outcome model converged.

    loglike_, null_loglike_ : float
        Training log-likelihood of the fitted and intercept-only models.

    n_features_in_ : int
        Number of predictors seen during fit.

    feature_names_in_ : ndarray of str
        Predictor names (DataFrame columns, or X1, X2, ...).

    Examples
    --------
    >>> from gspcr import GSPCR, generate_gspcr_data
    >>> data = generate_gspcr_data(n_samples=100, n_features=20, random_state=0)
    >>> model = GSPCR(threshold=2.0, n_components=1)
    >>> model.fit(data['X'], data['y'])  # doctest: +SKIP
    >>> model.summary()  # doctest: +SKIP
    """

    def __init__(
        self,
        family='gaussian',
        threshold=None,
        n_components=1,
        threshold_type='raw',
        column_types=None,
        s0_perc=None,
        max_iter=100,
        verbose=0
    ):
        self.family = family
        self.threshold = threshold
        self.n_components = n_components
        self.threshold_type = threshold_type
        self.column_types = column_types
        self.s0_perc = s0_perc
        self.max_iter = max_iter
        self.verbose = verbose

    def fit(self, X, y):
        """
        Fit the screening, the components and the outcome model.

        Parameters
        ----------
        X : array-like or DataFrame of shape (n_samples, n_features)
            Training predictors.

        y : array-like of shape (n_samples,)
            Outcome.

        Returns
        -------
        self : object
            Fitted estimator.
        """
        self.fit_datetime_ = datetime.now()
        fit_start_time = time.perf_counter()

        family = get_family(self.family, max_iter=self.max_iter) \
            if isinstance(self.family, str) else self.family
        y_enc, X_enc, names, types, levels, family = prepare_gspcr_data(
            y, X, family, self.column_types, self.threshold_type
        )
        self.family_ = family
        self.feature_names_in_ = names
        self.n_features_in_ = X_enc.shape[1]
        self.column_types_ = types
        self._levels = levels

        if hasattr(y, 'name') and y.name is not None:
            self.y_name_in_ = str(y.name)
        else:
            self.y_name_in_ = 'y'

        self.scores_ = compute_association_scores(
            y_enc, X_enc, family, types, self.threshold_type, self.s0_perc
        )
        threshold = DEGENERATE_SCORE if self.threshold is None else self.threshold
        self.active_set_ = select_active_set(self.scores_, threshold)
        self.active_features_ = names[self.active_set_]

        n_active = len(self.active_set_)
        if n_active == 0:
            raise GSPCRConfigurationError(
                f"No predictor has an association score above threshold={self.threshold}"
            )
        if self.n_components < 1 or self.n_components > n_active:
            raise GSPCRConfigurationError(
                f"n_components={self.n_components} must be between 1 and the "
                f"{n_active} retained predictors"
            )

        active_types = [types[j] for j in self.active_set_]
        self.extractor_ = ComponentExtractor(
            n_components=self.n_components, column_types=active_types
        ).fit(X_enc[:, self.active_set_])
        Z = self.extractor_.transform(X_enc[:, self.active_set_])

        if self.extractor_.n_components_ < self.n_components:
            warnings.warn(
                f"Only {self.extractor_.n_components_} components could be extracted "
                f"from the retained predictors (requested {self.n_components}).",
                UserWarning
            )

        self.outcome_fit_ = family.fit(y_enc, Z, check_convergence=False)
        self.converged_ = bool(self.outcome_fit_.converged)
        if not self.converged_:
            warnings.warn(
                f"The {family.name} outcome model did not converge. "
                f"Try fewer components or increase max_iter.",
                UserWarning
            )

        self.loglike_ = self.outcome_fit_.loglike(y_enc, Z)
        try:
            self.null_fit_ = family.fit_null(y_enc)
            self.null_loglike_ = self.null_fit_.loglike(y_enc, Z)
        except CellFitError:
            self.null_fit_ = None
            self.null_loglike_ = np.nan

        if self.verbose > 0:
            print(f"Retained {n_active}/{self.n_features_in_} predictors, "
                  f"{self.extractor_.n_components_} component(s), "
                  f"log-likelihood {self.loglike_:.4f}")

        self.fit_duration_seconds_ = time.perf_counter() - fit_start_time
        return self

    def transform(self, X):
        """Component scores of the retained predictors for the rows of X."""
        check_is_fitted(self)
        X_enc, _, _ = encode_predictors(X, self.column_types_, levels=self._levels)
        return self.extractor_.transform(X_enc[:, self.active_set_])

    def _predict_mean(self, X):
        return self.outcome_fit_.predict(self.transform(X))

    def predict(self, X):
        """
        Predict the outcome.

        Returns expected values for gaussian and poisson outcomes and the most
        probable level (original labels) for discrete outcomes.
        """
        check_is_fitted(self)
        mu = self._predict_mean(X)

        if self.family_.levels_ is None:
            return mu
        if mu.ndim == 1:
            return self.family_.levels_[(mu > 0.5).astype(int)]
        return self.family_.levels_[np.argmax(mu, axis=1)]

    def predict_proba(self, X):
        """Class probabilities, columns ordered as ``classes_``.

        Only available for discrete outcome families.
        """
        check_is_fitted(self)
        if self.family_.levels_ is None:
            raise ValueError(
                f"predict_proba is not available for the {self.family_.name} family"
            )
        mu = self._predict_mean(X)
        if mu.ndim == 1:
            return np.column_stack([1 - mu, mu])
        return mu

    @property
    def classes_(self):
        check_is_fitted(self)
        return self.family_.levels_

    def score(self, X, y):
        """R² for continuous outcomes, accuracy for discrete outcomes."""
        check_is_fitted(self)
        if self.family_.levels_ is None:
            return super().score(X, y)
        return float(np.mean(self.predict(X) == np.asarray(y)))

    def summary(self):
        """Print a summary of the fitted model."""
        check_is_fitted(self)

        print("=" * 60)
        print("GSPCR Summary")
        print("=" * 60)
        print(f"Family: {self.family_.name}")
        print(f"Threshold type: {self.threshold_type}")
        print(f"Threshold: {self.threshold}")
        print(f"Retained predictors: {len(self.active_set_)}/{self.n_features_in_}")
        print(f"Components: {self.extractor_.n_components_}")
        print(f"Converged: {self.converged_}")
        print(f"Log-likelihood: {self.loglike_:.4f}")
        if np.isfinite(self.null_loglike_):
            print(f"Null log-likelihood: {self.null_loglike_:.4f}")

        print("\nExplained variance ratio:")
        for q, ratio in enumerate(self.extractor_.explained_variance_ratio_, start=1):
            print(f"  PC{q}: {ratio:.4f}")

        print("\nRetained predictors (score):")
        for j in self.active_set_:
            print(f"  {self.feature_names_in_[j]}: {self.scores_[j]:.4f}")

        print("=" * 60)
