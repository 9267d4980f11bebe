"""
Principal components of mixed-type predictors.

Continuous columns are standardized; discrete columns are one-hot coded,
centred and divided by the square root of their level proportions (the
FAMD / PCAmix weighting). A PCA of the combined matrix then gives
components ordered by explained variance. With only continuous columns this is
the ordinary PCA of standardized data.
"""

import numpy as np
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.decomposition import PCA
from sklearn.preprocessing import OneHotEncoder, StandardScaler
from sklearn.utils.validation import check_array, check_is_fitted

from .exceptions import CellFitError
from .variables import VariableType


class ComponentExtractor(BaseEstimator, TransformerMixin):
    """
    Generalized PCA for mixed continuous and discrete predictors.

    Parameters
    ----------
    n_components : int, default=1
        Number of components to keep. Capped at the rank allowed by the data.

    column_types : list of VariableType or None, default=None
        Type per column of X. None treats every column as continuous.

    Attributes
    ----------
    n_components_ : int
        Number of components actually extracted.

    loadings_ : ndarray of shape (n_expanded_columns, n_components_)
        Component loadings (eigenvectors scaled by the square root of their
        eigenvalues) on the standardized / indicator columns.

    explained_variance_ratio_ : ndarray of shape (n_components_,)
        Share of total variance per component.

    Examples
    --------
    >>> extractor = ComponentExtractor(n_components=2)
    >>> scores = extractor.fit_transform(X)  # doctest: +SKIP
    """

    def __init__(self, n_components=1, column_types=None):
        self.n_components = n_components
        self.column_types = column_types

    def _prepare(self, X):
        parts = []
        if self.continuous_:
            parts.append(self.scaler_.transform(X[:, self.continuous_]))
        if self.discrete_:
            indicators = self.encoder_.transform(X[:, self.discrete_])
            parts.append((indicators - self.proportions_) / np.sqrt(self.proportions_))
        return np.hstack(parts)

    def fit(self, X, y=None):
        """Fit the scaling, the indicator coding and the PCA on X."""
        X = check_array(X, dtype=float)
        types = self.column_types
        if types is None:
            types = [VariableType.CONTINUOUS] * X.shape[1]

        self.continuous_ = [j for j, t in enumerate(types) if not t.is_discrete]
        self.discrete_ = [j for j, t in enumerate(types) if t.is_discrete]

        if self.continuous_:
            self.scaler_ = StandardScaler().fit(X[:, self.continuous_])
        if self.discrete_:
            self.encoder_ = OneHotEncoder(handle_unknown='ignore', sparse_output=False)
            self.encoder_.fit(X[:, self.discrete_])
            self.proportions_ = self.encoder_.transform(X[:, self.discrete_]).mean(axis=0)

        prepared = self._prepare(X)
        if not np.all(np.isfinite(prepared)):
            raise CellFitError("non-finite values after scaling the predictors")
        n_components = min(int(self.n_components), prepared.shape[1], prepared.shape[0])
        try:
            self.pca_ = PCA(n_components=n_components, svd_solver='full').fit(prepared)
        except np.linalg.LinAlgError as e:
            raise CellFitError(f"component extraction failed: {e}") from e

        self.n_components_ = self.pca_.n_components_
        self.loadings_ = self.pca_.components_.T * np.sqrt(self.pca_.explained_variance_)
        self.explained_variance_ratio_ = self.pca_.explained_variance_ratio_
        self.n_features_in_ = X.shape[1]
        return self

    def transform(self, X):
        """Project rows of X on the fitted components."""
        check_is_fitted(self)
        X = check_array(X, dtype=float)
        return self.pca_.transform(self._prepare(X))


def extract_components(X, max_components, column_types=None):
    """Extract up to ``max_components`` components from ``X``.

    Returns
    -------
    scores : ndarray of shape (n_samples, n_components)
    loadings : ndarray of shape (n_expanded_columns, n_components)
    """
    extractor = ComponentExtractor(n_components=max_components, column_types=column_types)
    scores = extractor.fit_transform(X)
    return scores, extractor.loadings_
