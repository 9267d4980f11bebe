"""
Variable typing for mixed-type predictors and outcomes.

Every predictor column carries a ``VariableType`` tag. Tags are resolved once,
when data enter the estimator, and every later step (screening, component
extraction) dispatches on the tag instead of inspecting dtypes again.
"""

from enum import Enum

import numpy as np
import pandas as pd

from .exceptions import GSPCRConfigurationError


class VariableType(str, Enum):
    """Measurement level of a variable."""

    CONTINUOUS = 'continuous'
    BINARY = 'binary'
    NOMINAL = 'nominal'
    ORDINAL = 'ordinal'

    @property
    def is_discrete(self):
        return self is not VariableType.CONTINUOUS

    @property
    def kind(self):
        """Screening kind: ``'continuous'`` or ``'discrete'``."""
        return 'discrete' if self.is_discrete else 'continuous'


def _as_type(value):
    try:
        return VariableType(value)
    except ValueError:
        valid = [t.value for t in VariableType]
        raise GSPCRConfigurationError(
            f"Unknown variable type '{value}'. Use one of {valid}."
        ) from None


def _infer_series_type(series):
    if pd.api.types.is_bool_dtype(series):
        return VariableType.BINARY
    if isinstance(series.dtype, pd.CategoricalDtype):
        if series.cat.ordered:
            return VariableType.ORDINAL
        if len(series.cat.categories) == 2:
            return VariableType.BINARY
        return VariableType.NOMINAL
    if pd.api.types.is_numeric_dtype(series):
        return VariableType.CONTINUOUS
    if series.nunique(dropna=True) == 2:
        return VariableType.BINARY
    return VariableType.NOMINAL


def as_frame(X):
    """Return ``X`` as a DataFrame, naming unnamed columns X1, X2, ..."""
    if isinstance(X, pd.DataFrame):
        return X
    X = np.asarray(X)
    if X.ndim != 2:
        raise GSPCRConfigurationError(
            f"X must be 2-dimensional, got an array with {X.ndim} dimension(s)"
        )
    return pd.DataFrame(X, columns=[f'X{i+1}' for i in range(X.shape[1])])


def infer_column_types(X):
    """Infer a ``VariableType`` per column.

    Numeric columns are continuous. Booleans and two-level categoricals or
    strings are binary, ordered categoricals are ordinal, and every other
    non-numeric column is nominal.

    Parameters
    ----------
    X : array-like or DataFrame of shape (n_samples, n_features)

    Returns
    -------
    list of VariableType
    """
    X = as_frame(X)
    return [_infer_series_type(X[col]) for col in X.columns]


def resolve_column_types(X, column_types=None):
    """Resolve the ``column_types`` argument into one tag per column.

    Accepted formats:

    - None: infer every column with ``infer_column_types``
    - a single type (str or VariableType): same type for all columns
    - a list: one type per column
    - a dict ``{column_name: type}``: listed columns are set, the rest inferred

    Examples
    --------
    >>> resolve_column_types(np.zeros((3, 2)), 'binary')
    [<VariableType.BINARY: 'binary'>, <VariableType.BINARY: 'binary'>]
    """
    X = as_frame(X)
    names = list(X.columns)

    if column_types is None:
        return infer_column_types(X)

    if isinstance(column_types, (str, VariableType)):
        return [_as_type(column_types)] * len(names)

    if isinstance(column_types, dict):
        unknown = set(column_types) - set(names)
        if unknown:
            raise GSPCRConfigurationError(
                f"column_types refers to unknown columns: {sorted(map(str, unknown))}"
            )
        inferred = infer_column_types(X)
        return [
            _as_type(column_types[name]) if name in column_types else inferred[i]
            for i, name in enumerate(names)
        ]

    types = list(column_types)
    if len(types) != len(names):
        raise GSPCRConfigurationError(
            f"column_types has {len(types)} elements, but X has {len(names)} columns"
        )
    return [_as_type(t) for t in types]


def categorical_codes(values, ordered=None, levels=None):
    """Integer-code a 1-d variable.

    Returns the codes (0..J-1) and the level labels. When ``levels`` is given
    the values are coded against those labels. Otherwise ordered pandas
    categoricals keep their declared order and anything else is sorted.
    """
    if levels is not None:
        values = np.asarray(values)
        if not pd.Series(values).isin(levels).all():
            raise GSPCRConfigurationError("Missing values or unseen levels are not supported")
        cat = pd.Categorical(values, categories=levels, ordered=bool(ordered))
    elif isinstance(values, (pd.Series, pd.Categorical)) and isinstance(
            getattr(values, 'dtype', None), pd.CategoricalDtype):
        cat = pd.Categorical(values)
        cat = cat.remove_unused_categories()
    else:
        cat = pd.Categorical(np.asarray(values), ordered=bool(ordered))
    codes = np.asarray(cat.codes, dtype=int)
    if np.any(codes < 0):
        raise GSPCRConfigurationError("Missing values are not supported")
    return codes, np.asarray(cat.categories)


def encode_predictors(X, column_types, levels=None):
    """Build the numeric predictor matrix used by screening and extraction.

    Continuous columns are cast to float, discrete columns are replaced by
    their integer level codes.

    Parameters
    ----------
    X : array-like or DataFrame of shape (n_samples, n_features)
    column_types : list of VariableType
    levels : list or None, default=None
        Levels returned by an earlier call (one entry per column, None for
        continuous columns). New data are coded against them so codes match
        the training data.

    Returns
    -------
    codes : ndarray of shape (n_samples, n_features)
    feature_names : ndarray of str
    levels : list
        Level labels per column (None for continuous columns).
    """
    X = as_frame(X)
    if levels is not None and len(levels) != X.shape[1]:
        raise GSPCRConfigurationError(
            f"X has {X.shape[1]} columns, expected {len(levels)}"
        )
    encoded = np.empty(X.shape, dtype=float)
    found_levels = []

    for j, (col, vtype) in enumerate(zip(X.columns, column_types)):
        series = X[col]
        if vtype.is_discrete:
            encoded[:, j], col_levels = categorical_codes(
                series, ordered=vtype is VariableType.ORDINAL,
                levels=None if levels is None else levels[j],
            )
            found_levels.append(col_levels)
        else:
            try:
                encoded[:, j] = series.to_numpy(dtype=float)
            except (TypeError, ValueError):
                raise GSPCRConfigurationError(
                    f"Column '{col}' is typed continuous but is not numeric"
                ) from None
            found_levels.append(None)

    if not np.all(np.isfinite(encoded)):
        raise GSPCRConfigurationError("Missing or non-finite values in X are not supported")

    return encoded, np.array([str(c) for c in X.columns]), found_levels
