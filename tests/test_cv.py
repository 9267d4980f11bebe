"""
Test suite for cross-validated GSPCR.
"""
import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm
from sklearn.base import clone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import gspcr.cv
from gspcr import (
    GSPCR,
    GSPCRCV,
    CellFitError,
    CellStatus,
    ComponentExtractor,
    GSPCRConfigurationError,
    NoValidSolutionError,
    cv_gspcr,
    generate_gspcr_data,
    plot_gspcr_cv,
)
from gspcr.regression.families import GaussianFamily


@pytest.fixture
def gaussian_data():
    """20 predictors, 8 of them driven by a single latent factor."""
    return generate_gspcr_data(n_samples=150, n_features=20, n_informative=8,
                               random_state=42)


@pytest.fixture
def one_factor_data():
    """Every predictor loads on the factor that drives the outcome."""
    return generate_gspcr_data(n_samples=200, n_features=20, n_informative=20,
                               random_state=1)


class TestCVGSPCR:
    """Tests for the cross-validation loop and its solution."""

    def test_basic_run(self, gaussian_data):
        """Test the shapes of the returned solution."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], n_thresholds=6,
                            random_state=0)

        assert solution.cube.values.shape == (5, 6, 3)
        assert solution.cube.fold_thresholds.shape == (5, 6)
        assert solution.surface.mean.shape == (6, 3)
        assert len(solution.thr_values) == 6
        assert len(solution.scores) == 20
        assert list(solution.sol_table.index) == ['standard', 'oneSE']
        assert solution.fit_measure == 'LRT'
        assert solution.orientation == 1
        assert solution.component_range == (1, 2, 3)
        assert len(solution.to_frame()) == 18

    def test_fold_grids_increase(self, gaussian_data):
        """Test that every fold grid is strictly increasing."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=0)
        assert np.all(np.diff(solution.cube.fold_thresholds, axis=1) > 0)
        assert np.all(np.diff(solution.thr_values) > 0)

    def test_standard_cell_is_optimal(self, gaussian_data):
        """Test that no defined cell beats the standard solution."""
        for measure in ('LRT', 'BIC', 'MSE'):
            solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'],
                                fit_measure=measure, random_state=0)
            _, thr_number, q = solution.standard
            k = solution.component_range.index(q)
            oriented = solution.surface.mean * solution.orientation
            assert oriented[thr_number, k] == np.nanmax(oriented)

    def test_one_se_within_band(self, gaussian_data):
        """Test that the 1-SE cell lies within one SE of the best cell."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'],
                            fit_measure='LRT', random_state=0)
        oriented = solution.surface.mean * solution.orientation

        _, best_thr, best_q = solution.standard
        best_k = solution.component_range.index(best_q)
        _, thr_number, q = solution.one_se
        k = solution.component_range.index(q)

        band = oriented[best_thr, best_k] - solution.surface.se[best_thr, best_k]
        assert oriented[thr_number, k] >= band
        assert q <= best_q

    def test_one_se_never_more_components_with_bic(self, gaussian_data):
        """Test that the 1-SE solution uses at most the standard number of components."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], fit_measure='BIC',
                            component_range=(1, 2, 3, 4), random_state=3)
        assert solution.one_se[2] <= solution.standard[2]

    def test_deterministic(self, gaussian_data):
        """Test that the same seed reproduces the whole solution."""
        first = cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=5)
        second = cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=5)

        np.testing.assert_array_equal(first.fold_ids, second.fold_ids)
        np.testing.assert_array_equal(first.cube.values, second.cube.values)
        pd.testing.assert_frame_equal(first.sol_table, second.sol_table)

    def test_parallel_matches_sequential(self, gaussian_data):
        """Test that joblib workers give the same cube."""
        sequential = cv_gspcr(gaussian_data['y'], gaussian_data['X'], n_thresholds=4,
                              random_state=2)
        parallel = cv_gspcr(gaussian_data['y'], gaussian_data['X'], n_thresholds=4,
                            random_state=2, n_jobs=2)
        np.testing.assert_allclose(sequential.cube.values, parallel.cube.values)

    def test_folds_balanced(self, gaussian_data):
        """Test fold sizes."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], n_folds=4,
                            random_state=0)
        sizes = np.bincount(solution.fold_ids)
        assert len(sizes) == 4
        assert sizes.max() - sizes.min() <= 1

    def test_feature_band_keeps_q_feasible(self, gaussian_data):
        """Test that with min_features >= max Q no cell is skipped."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], n_thresholds=5,
                            min_features=3, max_features=10, random_state=0)
        assert not np.any(solution.cube.status == CellStatus.SKIPPED)
        assert solution.surface.n_defined == 5 * 3

    def test_components_above_retained_are_skipped(self, gaussian_data):
        """Test that Q larger than the retained predictor count is skipped."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], n_thresholds=4,
                            component_range=(1, 2), random_state=0)
        # The highest threshold keeps a single predictor in every fold
        np.testing.assert_array_equal(solution.cube.status[:, -1, 1], CellStatus.SKIPPED)
        assert np.all(np.isnan(solution.cube.values[:, -1, 1]))
        assert np.all(solution.cube.status[:, -1, 0] == CellStatus.OK)


class TestWithoutCrossValidation:
    """Tests with a single fold, where models are scored on their training rows."""

    def test_mse_equals_in_sample_mse(self, gaussian_data):
        """Test a K=1 MSE cell against the in-sample MSE of the final model."""
        X, y = gaussian_data['X'], gaussian_data['y']
        solution = cv_gspcr(y, X, fit_measure='MSE', n_folds=1, n_thresholds=5)

        t, q = 1, 2
        model = GSPCR(threshold=solution.thr_values[t], n_components=q).fit(X, y)
        in_sample = np.mean((y - model.predict(X)) ** 2)
        assert np.isclose(solution.cube.values[0, t, 1], in_sample)
        np.testing.assert_allclose(solution.cube.fold_thresholds[0], solution.thr_values)

    def test_f_equals_ols_f(self, gaussian_data):
        """Test a K=1 F cell against the OLS F test on the component scores."""
        X, y = gaussian_data['X'], gaussian_data['y']
        solution = cv_gspcr(y, X, fit_measure='F', n_folds=1, n_thresholds=5)

        t, q = 1, 3
        model = GSPCR(threshold=solution.thr_values[t], n_components=q).fit(X, y)
        ols = sm.OLS(y, sm.add_constant(model.transform(X))).fit()
        assert np.isclose(solution.cube.values[0, t, 2], ols.fvalue)

    @pytest.mark.parametrize("measure", ['LRT', 'MSE', 'PR2'])
    def test_fit_measures_favor_more_components(self, one_factor_data, measure):
        """Test that unpenalized in-sample measures pick the largest Q."""
        solution = cv_gspcr(one_factor_data['y'], one_factor_data['X'],
                            fit_measure=measure, n_folds=1, n_thresholds=5,
                            component_range=range(1, 9), min_features=8)
        assert solution.standard[2] == 8

    @pytest.mark.parametrize("measure", ['BIC', 'F'])
    def test_penalized_measures_favor_fewer_components(self, one_factor_data, measure):
        """Test that BIC and F pick fewer components without cross-validation."""
        solution = cv_gspcr(one_factor_data['y'], one_factor_data['X'],
                            fit_measure=measure, n_folds=1, n_thresholds=5,
                            component_range=range(1, 9), min_features=8)
        assert solution.standard[2] < 8

    def test_single_fold_se_zero(self, gaussian_data):
        """Test that SE is 0 and both rules coincide with K=1."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], n_folds=1)
        defined = solution.surface.defined
        assert np.all(solution.surface.se[defined] == 0)
        assert solution.standard == solution.one_se


class FailingExtractor(ComponentExtractor):
    """Extractor that fails on the widest active set (threshold index 0)."""

    n_columns_to_fail = None

    def fit(self, X, y=None):
        if X.shape[1] == self.n_columns_to_fail:
            raise CellFitError("extraction failed")
        return super().fit(X, y)


class RecordingExtractor(ComponentExtractor):
    """Extractor that remembers the width of the last active set it was fitted on."""

    last_width = None

    def fit(self, X, y=None):
        RecordingExtractor.last_width = X.shape[1]
        return super().fit(X, y)


class TestUndefinedCells:
    """Tests for failed cells."""

    def test_unconverged_cells_excluded(self, gaussian_data, monkeypatch):
        """Test that outcome fits that stop early fail their cells only."""
        original_fit = GaussianFamily._fit

        def stalled_fit(self, y, Z):
            fit = original_fit(self, y, Z)
            if RecordingExtractor.last_width == 19:
                fit.converged = False
            return fit

        monkeypatch.setattr(gspcr.cv, 'ComponentExtractor', RecordingExtractor)
        monkeypatch.setattr(GaussianFamily, '_fit', stalled_fit)

        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=0)

        assert np.all(solution.cube.status[:, 0, :] == CellStatus.FAILED)
        assert np.all(np.isnan(solution.cube.values[:, 0, :]))
        assert np.all(np.isnan(solution.surface.mean[0]))
        assert np.any(solution.cube.status[:, 1:, :] == CellStatus.OK)
        assert solution.standard[1] != 0
        assert solution.one_se[1] != 0

    def test_programming_errors_propagate(self, gaussian_data, monkeypatch):
        """Test that errors other than cell failures are not absorbed."""
        class BrokenExtractor(ComponentExtractor):
            def fit(self, X, y=None):
                raise TypeError("unexpected argument")

        monkeypatch.setattr(gspcr.cv, 'ComponentExtractor', BrokenExtractor)
        with pytest.raises(TypeError, match="unexpected argument"):
            cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=0)

        class InvalidExtractor(ComponentExtractor):
            def fit(self, X, y=None):
                raise ValueError("invalid extractor setting")

        monkeypatch.setattr(gspcr.cv, 'ComponentExtractor', InvalidExtractor)
        with pytest.raises(ValueError, match="invalid extractor setting"):
            cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=0)

    def test_failed_cells_excluded(self, gaussian_data, monkeypatch):
        """Test that failed cells are NaN and never selected."""
        monkeypatch.setattr(FailingExtractor, 'n_columns_to_fail', 19)
        monkeypatch.setattr(gspcr.cv, 'ComponentExtractor', FailingExtractor)

        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=0)

        assert np.all(solution.cube.status[:, 0, :] == CellStatus.FAILED)
        assert np.all(np.isnan(solution.surface.mean[0]))
        assert solution.standard[1] != 0
        assert solution.one_se[1] != 0

    def test_all_cells_failed(self, gaussian_data, monkeypatch):
        """Test that a surface without defined cells raises."""
        class AlwaysFailing(ComponentExtractor):
            def fit(self, X, y=None):
                raise CellFitError("extraction failed")

        monkeypatch.setattr(gspcr.cv, 'ComponentExtractor', AlwaysFailing)
        with pytest.raises(NoValidSolutionError):
            cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=0)

    def test_verbose_reports_failures(self, gaussian_data, monkeypatch, capsys):
        """Test progress and failure lines with verbose=1."""
        monkeypatch.setattr(FailingExtractor, 'n_columns_to_fail', 19)
        monkeypatch.setattr(gspcr.cv, 'ComponentExtractor', FailingExtractor)

        cv_gspcr(gaussian_data['y'], gaussian_data['X'], random_state=0, verbose=1)
        out = capsys.readouterr().out
        assert "Evaluating" in out
        assert "Failed: fold 0, threshold 0" in out
        assert "standard:" in out


class TestConfigurationErrors:
    """Tests for invalid options and data, raised before any fit."""

    @pytest.mark.parametrize("options", [
        {'n_folds': 0},
        {'n_folds': 151},
        {'n_thresholds': 0},
        {'component_range': (0, 1)},
        {'component_range': (1, 21)},
        {'component_range': ()},
        {'min_features': 0},
        {'min_features': 5, 'max_features': 4},
        {'family': 'weibull'},
        {'fit_measure': 'deviance'},
        {'threshold_type': 'adjusted'},
    ])
    def test_invalid_options(self, gaussian_data, options):
        """Test every invalid option."""
        with pytest.raises(GSPCRConfigurationError):
            cv_gspcr(gaussian_data['y'], gaussian_data['X'], **options)

    def test_measure_family_mismatch(self):
        """Test F and MSE with a discrete outcome."""
        data = generate_gspcr_data(n_samples=60, n_features=10, family='binomial',
                                   random_state=0)
        for measure in ('F', 'MSE'):
            with pytest.raises(GSPCRConfigurationError):
                cv_gspcr(data['y'], data['X'], family='binomial', fit_measure=measure)

    def test_normalized_requires_gaussian(self):
        """Test the normalized threshold type with a binary outcome."""
        data = generate_gspcr_data(n_samples=60, n_features=10, family='binomial',
                                   random_state=0)
        with pytest.raises(GSPCRConfigurationError):
            cv_gspcr(data['y'], data['X'], family='binomial', threshold_type='normalized')

    def test_data_errors(self, gaussian_data):
        """Test missing values, length mismatch and degenerate predictors."""
        X, y = gaussian_data['X'].copy(), gaussian_data['y']
        X[3, 4] = np.nan
        with pytest.raises(GSPCRConfigurationError):
            cv_gspcr(y, X)
        with pytest.raises(GSPCRConfigurationError):
            cv_gspcr(y[:-1], gaussian_data['X'])
        with pytest.raises(GSPCRConfigurationError):
            cv_gspcr(y, np.ones((150, 3)))


class TestFamiliesAndTypes:
    """End-to-end runs for every outcome family and for mixed predictors."""

    def test_binomial(self):
        """Test a binary outcome with the default LRT."""
        data = generate_gspcr_data(n_samples=150, n_features=15, family='binomial',
                                   effect=2.0, random_state=0)
        solution = cv_gspcr(data['y'], data['X'], family='binomial', n_thresholds=5,
                            random_state=0)
        assert solution.family == 'binomial'
        assert solution.surface.n_defined > 0

    def test_binomial_pr2_threshold(self):
        """Test likelihood-based screening with a binary outcome."""
        data = generate_gspcr_data(n_samples=150, n_features=10, family='binomial',
                                   effect=2.0, random_state=1)
        solution = cv_gspcr(data['y'], data['X'], family='binomial', threshold_type='pr2',
                            fit_measure='AIC', n_thresholds=4, random_state=0)
        assert solution.threshold_type == 'pr2'
        assert np.all((solution.scores > 0) & (solution.scores < 1))

    def test_poisson(self):
        """Test a count outcome."""
        data = generate_gspcr_data(n_samples=150, n_features=15, family='poisson',
                                   random_state=2)
        solution = cv_gspcr(data['y'], data['X'], family='poisson', fit_measure='BIC',
                            n_thresholds=5, random_state=0)
        assert solution.orientation == -1
        assert solution.surface.n_defined > 0

    def test_multinomial(self):
        """Test a nominal outcome with string labels."""
        data = generate_gspcr_data(n_samples=180, n_features=12, family='multinomial',
                                   effect=2.0, random_state=3)
        solution = cv_gspcr(data['y'], data['X'], family='baseline', n_thresholds=4,
                            component_range=(1, 2), random_state=0)
        assert solution.family == 'multinomial'
        assert solution.surface.n_defined > 0

    def test_cumulative(self):
        """Test an ordinal outcome."""
        data = generate_gspcr_data(n_samples=180, n_features=12, family='cumulative',
                                   effect=2.0, random_state=4)
        solution = cv_gspcr(data['y'], data['X'], family='ordinal', n_thresholds=4,
                            component_range=(1, 2), random_state=0)
        assert solution.family == 'cumulative'
        assert solution.surface.n_defined > 0

    def test_mixed_predictors(self):
        """Test nominal predictors with raw and likelihood screening."""
        data = generate_gspcr_data(n_samples=150, n_features=12, n_informative=6,
                                   n_discrete=3, random_state=5)
        for threshold_type in ('raw', 'lls'):
            solution = cv_gspcr(data['y'], data['X'], threshold_type=threshold_type,
                                n_thresholds=4, random_state=0)
            assert list(solution.feature_names) == list(data['X'].columns)
            assert solution.surface.n_defined > 0

    def test_normalized_threshold(self, gaussian_data):
        """Test normalized screening with a gaussian outcome."""
        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'],
                            threshold_type='normalized', random_state=0)
        assert solution.threshold_type == 'normalized'
        # The strongest scores belong to the informative predictors
        top = np.argsort(solution.scores)[-3:]
        assert set(top) <= set(gaussian_data['informative'])


class TestGSPCRCV:
    """Tests for the cross-validated estimator."""

    def test_fit_and_refit(self, gaussian_data):
        """Test that the refit model uses the selected solution."""
        model = GSPCRCV(n_thresholds=6, random_state=0)
        model.fit(gaussian_data['X'], gaussian_data['y'])

        row = model.sol_table_.loc['oneSE']
        assert model.threshold_ == row['thr_value']
        assert model.n_components_ == row['Q']
        assert model.best_estimator_.extractor_.n_components_ == model.n_components_
        np.testing.assert_allclose(model.scores_, model.solution_.scores)
        assert model.predict(gaussian_data['X']).shape == (150,)
        assert model.transform(gaussian_data['X']).shape == (150, model.n_components_)

    def test_standard_refit_rule(self, gaussian_data):
        """Test refitting with the standard solution."""
        model = GSPCRCV(refit_rule='standard', random_state=0)
        model.fit(gaussian_data['X'], gaussian_data['y'])
        assert model.n_components_ == model.solution_.standard[2]

    def test_invalid_refit_rule(self, gaussian_data):
        """Test an unknown refit rule."""
        with pytest.raises(GSPCRConfigurationError):
            GSPCRCV(refit_rule='best').fit(gaussian_data['X'], gaussian_data['y'])

    def test_cv_results_df(self, gaussian_data):
        """Test the cross-validation results table."""
        model = GSPCRCV(n_thresholds=5, random_state=0)
        model.fit(gaussian_data['X'], gaussian_data['y'])
        df = model.get_cv_results_df()

        assert len(df) == 5 * 3
        assert df.iloc[0]['rank'] == 1
        best = model.solution_.standard
        assert df.iloc[0]['thr_number'] == best[1]
        assert df.iloc[0]['Q'] == best[2]

    def test_binomial_predict_proba(self):
        """Test probabilities from the refit model."""
        data = generate_gspcr_data(n_samples=150, n_features=12, family='binomial',
                                   effect=2.0, random_state=6)
        model = GSPCRCV(family='binomial', n_thresholds=4, random_state=0)
        model.fit(data['X'], data['y'])
        proba = model.predict_proba(data['X'])
        np.testing.assert_allclose(proba.sum(axis=1), 1.0)
        assert model.score(data['X'], data['y']) > 0.6

    def test_clone(self):
        """Test scikit-learn parameter handling."""
        model = GSPCRCV(fit_measure='BIC', component_range=(1, 2))
        assert clone(model).get_params() == model.get_params()

    def test_summary(self, gaussian_data, capsys):
        """Test summary report output."""
        model = GSPCRCV(n_thresholds=4, random_state=0)
        model.fit(gaussian_data['X'], gaussian_data['y'])
        model.summary()
        out = capsys.readouterr().out
        assert "GSPCRCV Summary" in out
        assert "oneSE" in out
        assert "(refit)" in out


class TestPlotting:
    """Tests for the cross-validation plot."""

    def test_plot(self, gaussian_data, tmp_path):
        """Test figure creation and saving."""
        import matplotlib
        matplotlib.use('Agg')
        import matplotlib.pyplot as plt

        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], fit_measure='BIC',
                            n_thresholds=4, random_state=0)
        path = tmp_path / 'cv.png'
        fig = plot_gspcr_cv(solution, save_path=str(path))

        ax = fig.axes[0]
        assert len(ax.get_lines()) == 3
        assert ax.get_ylabel() == 'Cross-validated -BIC'
        assert path.exists()
        plt.close(fig)

    def test_plot_without_reversal(self, gaussian_data):
        """Test reverse=False keeps the raw measure."""
        import matplotlib
        matplotlib.use('Agg')
        import matplotlib.pyplot as plt

        solution = cv_gspcr(gaussian_data['y'], gaussian_data['X'], fit_measure='MSE',
                            n_thresholds=4, random_state=0)
        fig = plot_gspcr_cv(solution, reverse=False, show_se=False)
        line = fig.axes[0].get_lines()[0]
        np.testing.assert_allclose(line.get_ydata(), solution.surface.mean[:, 0])
        plt.close(fig)
