"""
Test suite for variable typing and fold assignment.
"""
import warnings

import numpy as np
import pandas as pd
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gspcr import (
    VariableType,
    GSPCRConfigurationError,
    infer_column_types,
    resolve_column_types,
    encode_predictors,
    make_folds,
    iter_folds,
)


class TestVariableTypes:
    """Tests for column type inference and predictor encoding."""

    @pytest.fixture
    def mixed_frame(self):
        """DataFrame with one column of every variable type."""
        return pd.DataFrame({
            'age': [31.0, 45.5, 22.1, 60.2, 38.0, 51.3],
            'smoker': [True, False, False, True, False, True],
            'region': ['north', 'south', 'east', 'north', 'east', 'south'],
            'grade': pd.Categorical(['low', 'high', 'mid', 'mid', 'low', 'high'],
                                    categories=['low', 'mid', 'high'], ordered=True),
            'sex': ['f', 'm', 'm', 'f', 'f', 'm'],
        })

    def test_infer_types(self, mixed_frame):
        """Test inference of every variable type."""
        types = infer_column_types(mixed_frame)
        assert types == [
            VariableType.CONTINUOUS,
            VariableType.BINARY,
            VariableType.NOMINAL,
            VariableType.ORDINAL,
            VariableType.BINARY,
        ]

    def test_numpy_input_is_continuous(self):
        """Test that numeric arrays are typed continuous."""
        types = infer_column_types(np.random.randn(5, 3))
        assert all(t is VariableType.CONTINUOUS for t in types)

    def test_discrete_kinds(self):
        """Test the screening kind of each type."""
        assert VariableType.CONTINUOUS.kind == 'continuous'
        for vtype in (VariableType.BINARY, VariableType.NOMINAL, VariableType.ORDINAL):
            assert vtype.is_discrete
            assert vtype.kind == 'discrete'

    def test_resolve_single_type(self):
        """Test a single type applied to every column."""
        types = resolve_column_types(np.zeros((4, 3)), 'nominal')
        assert types == [VariableType.NOMINAL] * 3

    def test_resolve_dict(self, mixed_frame):
        """Test dict-style types with inference for unlisted columns."""
        types = resolve_column_types(mixed_frame, {'region': 'ordinal'})
        assert types[2] is VariableType.ORDINAL
        assert types[0] is VariableType.CONTINUOUS

    def test_resolve_errors(self, mixed_frame):
        """Test invalid type specifications."""
        with pytest.raises(GSPCRConfigurationError):
            resolve_column_types(mixed_frame, ['continuous'])
        with pytest.raises(GSPCRConfigurationError):
            resolve_column_types(mixed_frame, {'unknown': 'binary'})
        with pytest.raises(GSPCRConfigurationError):
            resolve_column_types(mixed_frame, 'interval')

    def test_encode_predictors(self, mixed_frame):
        """Test level coding of discrete columns."""
        types = infer_column_types(mixed_frame)
        codes, names, levels = encode_predictors(mixed_frame, types)

        assert codes.shape == (6, 5)
        assert list(names) == list(mixed_frame.columns)
        assert levels[0] is None
        np.testing.assert_array_equal(codes[:, 0], mixed_frame['age'].to_numpy())
        # Ordered categoricals keep their declared order
        np.testing.assert_array_equal(codes[:, 3], [0, 2, 1, 1, 0, 2])
        assert list(levels[3]) == ['low', 'mid', 'high']

    def test_encode_against_training_levels(self, mixed_frame):
        """Test that new rows are coded with the training levels."""
        types = infer_column_types(mixed_frame)
        _, _, levels = encode_predictors(mixed_frame, types)

        new_rows = mixed_frame.iloc[[4, 5]].copy()
        codes, _, _ = encode_predictors(new_rows, types, levels=levels)
        # 'east' < 'north' < 'south'
        np.testing.assert_array_equal(codes[:, 2], [0, 2])

        new_rows['region'] = ['west', 'east']
        with pytest.raises(GSPCRConfigurationError):
            encode_predictors(new_rows, types, levels=levels)

    def test_unseen_levels_checked_before_coding(self, mixed_frame):
        """Test that unseen or missing levels raise without pandas coding them."""
        types = infer_column_types(mixed_frame)
        _, _, levels = encode_predictors(mixed_frame, types)
        new_rows = mixed_frame.iloc[[0, 1]].copy()

        new_rows['region'] = ['west', 'north']
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            with pytest.raises(GSPCRConfigurationError, match="unseen levels"):
                encode_predictors(new_rows, types, levels=levels)
        assert not any("categories" in str(w.message) for w in caught)

        new_rows['region'] = [None, 'north']
        with pytest.raises(GSPCRConfigurationError, match="unseen levels"):
            encode_predictors(new_rows, types, levels=levels)

        new_rows['region'] = ['south', 'north']
        codes, _, _ = encode_predictors(new_rows, types, levels=levels)
        np.testing.assert_array_equal(codes[:, 2], [2, 1])

    def test_missing_values_rejected(self):
        """Test that missing values raise a configuration error."""
        X = np.random.randn(5, 2)
        X[2, 1] = np.nan
        with pytest.raises(GSPCRConfigurationError):
            encode_predictors(X, [VariableType.CONTINUOUS] * 2)

    def test_non_numeric_continuous_rejected(self, mixed_frame):
        """Test a string column forced to continuous."""
        with pytest.raises(GSPCRConfigurationError):
            encode_predictors(mixed_frame[['region']], [VariableType.CONTINUOUS])


class TestFolds:
    """Tests for fold assignment."""

    @pytest.mark.parametrize("n_samples,n_folds", [(10, 3), (100, 5), (7, 7), (50, 10)])
    def test_coverage_and_balance(self, n_samples, n_folds):
        """Test that every index gets exactly one fold and sizes differ by <= 1."""
        fold_ids = make_folds(n_samples, n_folds, random_state=0)

        assert fold_ids.shape == (n_samples,)
        assert set(np.unique(fold_ids)) == set(range(n_folds))
        sizes = np.bincount(fold_ids, minlength=n_folds)
        assert sizes.sum() == n_samples
        assert sizes.max() - sizes.min() <= 1

    def test_reproducible(self):
        """Test that the same seed gives the same assignment."""
        np.testing.assert_array_equal(make_folds(40, 4, random_state=3),
                                      make_folds(40, 4, random_state=3))

    def test_single_fold(self):
        """Test that K=1 trains and tests on the same rows."""
        fold_ids = make_folds(12, 1)
        assert np.all(fold_ids == 0)

        folds = list(iter_folds(fold_ids))
        assert len(folds) == 1
        fold, train, test = folds[0]
        assert fold == 0
        np.testing.assert_array_equal(train, np.arange(12))
        np.testing.assert_array_equal(train, test)

    def test_iter_folds_partition(self):
        """Test that the test sets partition the rows and train is the complement."""
        fold_ids = make_folds(23, 4, random_state=1)
        seen = []
        for fold, train, test in iter_folds(fold_ids):
            assert len(np.intersect1d(train, test)) == 0
            assert len(train) + len(test) == 23
            assert np.all(fold_ids[test] == fold)
            seen.extend(test)
        assert sorted(seen) == list(range(23))

    def test_invalid_fold_counts(self):
        """Test K < 1 and K > N."""
        with pytest.raises(GSPCRConfigurationError):
            make_folds(10, 0)
        with pytest.raises(GSPCRConfigurationError):
            make_folds(10, 11)
