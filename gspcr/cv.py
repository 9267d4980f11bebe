"""
Cross-validated GSPCR.

``cv_gspcr`` evaluates every (fold, threshold, Q) cell: predictors are screened
on the training rows of each fold, components are extracted from the retained
predictors, the outcome model is fitted on the training rows and scored on the
held-out rows. The fold results are averaged into a solution surface from which
the standard and 1-SE solutions are selected.

``GSPCRCV`` wraps this in a scikit-learn estimator that refits ``GSPCR`` on the
full data with the selected configuration.
"""

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.utils.validation import check_is_fitted

from .components import ComponentExtractor
from .config import GSPCRConfig
from .exceptions import CellFitError, GSPCRConfigurationError
from .folds import iter_folds, make_folds
from .regression.estimator import GSPCR, prepare_gspcr_data
from .regression.measures import check_measure_family, get_fit_measure, measure_orientation
from .results import CellStatus, GSPCRSolution, ResultsCube
from .screening import build_threshold_grid, compute_association_scores, select_active_set
from .selection import build_solution_table
from .variables import as_frame


def _evaluate_fold(fold, train, test, y, X, family, column_types, config):
    """Score every (threshold, Q) cell of one fold.

    Returns
    -------
    fold : int
    values : ndarray of shape (n_thresholds, n_components)
        Raw fit-measure values, NaN for undefined cells.
    status : ndarray of shape (n_thresholds, n_components)
        ``CellStatus`` codes.
    thresholds : ndarray of shape (n_thresholds,)
        Threshold grid of this fold.
    messages : list of str
        One line per failure.
    """
    component_range = config.component_range
    shape = (config.n_thresholds, len(component_range))
    values = np.full(shape, np.nan)
    status = np.full(shape, CellStatus.FAILED, dtype=np.int8)
    thresholds = np.full(config.n_thresholds, np.nan)
    messages = []

    measure = get_fit_measure(config.fit_measure)
    y_train, X_train = y[train], X[train]
    y_test, X_test = y[test], X[test]

    try:
        scores = compute_association_scores(
            y_train, X_train, family, column_types, config.threshold_type, config.s0_perc
        )
        thresholds = build_threshold_grid(
            scores, config.n_thresholds, config.min_features, config.max_features
        )
        null_fit = family.fit_null(y_train)
    except (CellFitError, GSPCRConfigurationError) as e:
        messages.append(f"fold {fold}: {e}")
        return fold, values, status, thresholds, messages

    for t, threshold in enumerate(thresholds):
        active = select_active_set(scores, threshold)
        n_active = len(active)

        if not config.min_features <= n_active <= config.max_features:
            status[t] = CellStatus.SKIPPED
            continue

        feasible = [q for q in component_range if q <= n_active]
        status[t, len(feasible):] = CellStatus.SKIPPED
        if not feasible:
            continue

        try:
            extractor = ComponentExtractor(
                n_components=feasible[-1],
                column_types=[column_types[j] for j in active]
            ).fit(X_train[:, active])
            Z_train = extractor.transform(X_train[:, active])
            Z_test = extractor.transform(X_test[:, active])
        except CellFitError as e:
            messages.append(f"fold {fold}, threshold {t}: component extraction failed: {e}")
            continue

        for k, q in enumerate(feasible):
            if q > Z_train.shape[1]:
                messages.append(f"fold {fold}, threshold {t}, Q={q}: "
                                f"only {Z_train.shape[1]} components available")
                continue
            try:
                fit = family.fit(y_train, Z_train[:, :q])
                value = measure(y_test, Z_test[:, :q], fit, null_fit)
            except CellFitError as e:
                messages.append(f"fold {fold}, threshold {t}, Q={q}: {e}")
                continue
            if not np.isfinite(value):
                messages.append(f"fold {fold}, threshold {t}, Q={q}: non-finite {config.fit_measure}")
                continue
            values[t, k] = value
            status[t, k] = CellStatus.OK

    return fold, values, status, thresholds, messages


def _cross_validate(y, X, config, column_types=None):
    """Run the cross-validation loop for one configuration."""
    config = config.validate(*as_frame(X).shape)
    y, X, feature_names, column_types, _, family = prepare_gspcr_data(
        y, X, config.family, column_types, config.threshold_type
    )
    fit_measure = check_measure_family(config.fit_measure, family)

    # Full-data scores and grid: reported threshold values and configuration checks
    scores = compute_association_scores(
        y, X, family, column_types, config.threshold_type, config.s0_perc
    )
    thr_values = build_threshold_grid(
        scores, config.n_thresholds, config.min_features, config.max_features
    )

    fold_ids = make_folds(len(y), config.n_folds, config.random_state)
    cube = ResultsCube.empty(config.n_folds, config.n_thresholds, config.component_range)

    if config.verbose > 0:
        n_cells = config.n_folds * config.n_thresholds * len(config.component_range)
        print(f"Evaluating {n_cells} cells ({config.n_folds} folds x "
              f"{config.n_thresholds} thresholds x {len(config.component_range)} Q) "
              f"using {fit_measure}...")

    fold_results = Parallel(n_jobs=config.n_jobs)(
        delayed(_evaluate_fold)(fold, train, test, y, X, family, column_types, config)
        for fold, train, test in iter_folds(fold_ids)
    )

    for fold, values, status, thresholds, messages in fold_results:
        cube.commit(fold, values, status, thresholds)
        if config.verbose > 0:
            for message in messages:
                print(f"  Failed: {message}")

    surface = cube.aggregate()
    orientation = measure_orientation(fit_measure)
    sol_table = build_solution_table(surface, thr_values, orientation, config.one_se)

    if config.verbose > 0:
        print(f"Defined cells: {surface.n_defined}/{surface.mean.size}")
        for rule, row in sol_table.iterrows():
            print(f"{rule}: threshold {row['thr_value']:.4f} "
                  f"(#{int(row['thr_number'])}), Q = {int(row['Q'])}")

    return GSPCRSolution(
        cube=cube,
        surface=surface,
        sol_table=sol_table,
        thr_values=thr_values,
        scores=scores,
        fold_ids=fold_ids,
        fit_measure=fit_measure,
        threshold_type=config.threshold_type,
        family=family.name,
        orientation=orientation,
        feature_names=feature_names,
        config=config,
    )


def cv_gspcr(
    y,
    X,
    family='gaussian',
    fit_measure='LRT',
    threshold_type='raw',
    n_thresholds=10,
    component_range=(1, 2, 3),
    n_folds=5,
    min_features=1,
    max_features=None,
    one_se=True,
    column_types=None,
    s0_perc=None,
    random_state=None,
    n_jobs=None,
    verbose=0
):
    """
    Cross-validate the threshold and number of components of GSPCR.

    Parameters
    ----------
    y : array-like of shape (n_samples,)
        Outcome. Numeric for 'gaussian' and 'poisson', any labels for the
        discrete families (ordered categoricals keep their order).

    X : array-like or DataFrame of shape (n_samples, n_features)
        Predictors; a DataFrame may mix numeric and categorical columns.

    family : str, default='gaussian'
        'gaussian', 'binomial', 'poisson', 'multinomial' ('baseline') or
        'cumulative' ('ordinal').

    fit_measure : str, default='LRT'
        'LRT', 'PR2', 'F', 'MSE', 'AIC' or 'BIC'. 'F' and 'MSE' need the
        gaussian family.

    threshold_type : str, default='raw'
        'raw', 'normalized', 'lls' or 'pr2'.

    n_thresholds : int, default=10
        Number of threshold values.

    component_range : sequence of int, default=(1, 2, 3)
        Candidate numbers of components.

    n_folds : int, default=5
        Number of folds K. ``n_folds=1`` trains and scores on all rows.

    min_features, max_features : int, default=1, None
        A threshold whose retained-predictor count falls outside this band is
        skipped. ``max_features=None`` means all predictors.

    one_se : bool, default=True
        Also select the 1-SE solution.

    column_types : None, str, list or dict, default=None
        Predictor types. None infers them from the data.

    s0_perc : float or None, default=None
        Fudge-factor percentile for normalized scores.

    random_state : int, RandomState instance or None, default=None
        Seed of the fold assignment.

    n_jobs : int or None, default=None
        Number of folds evaluated in parallel. None runs sequentially.

    verbose : int, default=0
        Verbosity level.

    Returns
    -------
    solution : GSPCRSolution
        Results cube, solution surface and solution table.

    Raises
    ------
    GSPCRConfigurationError
        If the options or the data are invalid (raised before any fit).
    NoValidSolutionError
        If every (threshold, Q) cell is undefined.

    Examples
    --------
    >>> from gspcr import cv_gspcr, generate_gspcr_data
    >>> data = generate_gspcr_data(n_samples=100, n_features=20, random_state=0)
    >>> solution = cv_gspcr(data['y'], data['X'], random_state=0)  # doctest: +SKIP
    >>> solution.sol_table  # doctest: +SKIP
    """
    config = GSPCRConfig(
        family=family,
        fit_measure=fit_measure,
        threshold_type=threshold_type,
        n_thresholds=n_thresholds,
        component_range=tuple(component_range),
        n_folds=n_folds,
        min_features=min_features,
        max_features=max_features,
        one_se=one_se,
        s0_perc=s0_perc,
        random_state=random_state,
        n_jobs=n_jobs,
        verbose=verbose,
    )
    return _cross_validate(y, X, config, column_types)


class GSPCRCV(BaseEstimator, RegressorMixin):
    """
    GSPCR with the threshold and number of components chosen by cross-validation.

    Runs ``cv_gspcr``, then refits ``GSPCR`` on the full data with the
    solution selected by ``refit_rule``.

    Parameters
    ----------
    family, fit_measure, threshold_type, n_thresholds, component_range,
    n_folds, min_features, max_features, column_types, s0_perc,
    random_state, n_jobs, verbose
        As in ``cv_gspcr``.

    refit_rule : str, default='oneSE'
        Solution used for the final model:
        - 'standard': best mean fit measure
        - 'oneSE': simplest solution within one standard error of the best

    Attributes
    ----------
    solution_ : GSPCRSolution
        Full cross-validation results.

    sol_table_ : pd.DataFrame
        Standard and 1-SE solutions.

    threshold_ : float
        Selected threshold.

    n_components_ : int
        Selected number of components.

    best_estimator_ : GSPCR
        Final model fitted on the full data.

    cv_results_ : dict
        Mean / SE of the fit measure per (threshold, Q) cell.

    scores_, active_set_, converged_, n_features_in_, feature_names_in_
        Copied from ``best_estimator_``.

    Examples
    --------
    >>> from gspcr import GSPCRCV, generate_gspcr_data
    >>> data = generate_gspcr_data(n_samples=100, n_features=20, random_state=0)
    >>> model = GSPCRCV(fit_measure='BIC', random_state=0)
    >>> model.fit(data['X'], data['y'])  # doctest: +SKIP
    >>> model.summary()  # doctest: +SKIP
    """

    def __init__(
        self,
        family='gaussian',
        fit_measure='LRT',
        threshold_type='raw',
        n_thresholds=10,
        component_range=(1, 2, 3),
        n_folds=5,
        min_features=1,
        max_features=None,
        refit_rule='oneSE',
        column_types=None,
        s0_perc=None,
        random_state=None,
        n_jobs=None,
        verbose=0
    ):
        self.family = family
        self.fit_measure = fit_measure
        self.threshold_type = threshold_type
        self.n_thresholds = n_thresholds
        self.component_range = component_range
        self.n_folds = n_folds
        self.min_features = min_features
        self.max_features = max_features
        self.refit_rule = refit_rule
        self.column_types = column_types
        self.s0_perc = s0_perc
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.verbose = verbose

    def fit(self, X, y):
        """
        Cross-validate, then fit the selected model on the full data.

        Parameters
        ----------
        X : array-like or DataFrame of shape (n_samples, n_features)
            Predictors.

        y : array-like of shape (n_samples,)
            Outcome.

        Returns
        -------
        self : object
            Fitted estimator.
        """
        if self.refit_rule not in ('standard', 'oneSE'):
            raise GSPCRConfigurationError(
                f"refit_rule must be 'standard' or 'oneSE', got '{self.refit_rule}'"
            )

        self.solution_ = cv_gspcr(
            y, X,
            family=self.family,
            fit_measure=self.fit_measure,
            threshold_type=self.threshold_type,
            n_thresholds=self.n_thresholds,
            component_range=self.component_range,
            n_folds=self.n_folds,
            min_features=self.min_features,
            max_features=self.max_features,
            one_se=True,
            column_types=self.column_types,
            s0_perc=self.s0_perc,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
            verbose=self.verbose,
        )
        self.sol_table_ = self.solution_.sol_table

        row = self.sol_table_.loc[self.refit_rule]
        self.threshold_ = float(row['thr_value'])
        self.thr_number_ = int(row['thr_number'])
        self.n_components_ = int(row['Q'])

        self.best_estimator_ = GSPCR(
            family=self.solution_.family,
            threshold=self.threshold_,
            n_components=self.n_components_,
            threshold_type=self.threshold_type,
            column_types=self.column_types,
            s0_perc=self.s0_perc,
            verbose=0
        ).fit(X, y)

        self.cv_results_ = self._build_cv_results()
        self._copy_estimator_attributes()
        return self

    def _build_cv_results(self):
        frame = self.solution_.to_frame()
        oriented = frame['mean'] * self.solution_.orientation
        rank = oriented.rank(ascending=False, method='min', na_option='bottom')
        return {
            'param_threshold': frame['thr_value'].to_numpy(),
            'param_thr_number': frame['thr_number'].to_numpy(),
            'param_Q': frame['Q'].to_numpy(),
            'mean_test_score': frame['mean'].to_numpy(),
            'se_test_score': frame['se'].to_numpy(),
            'rank_test_score': rank.to_numpy().astype(int),
        }

    def _copy_estimator_attributes(self):
        """Copy attributes from best_estimator_ to self."""
        self.scores_ = self.best_estimator_.scores_
        self.active_set_ = self.best_estimator_.active_set_
        self.converged_ = self.best_estimator_.converged_
        self.n_features_in_ = self.best_estimator_.n_features_in_
        self.feature_names_in_ = self.best_estimator_.feature_names_in_

    def predict(self, X):
        """Predict using the best estimator."""
        check_is_fitted(self)
        return self.best_estimator_.predict(X)

    def predict_proba(self, X):
        """Class probabilities using the best estimator (discrete families)."""
        check_is_fitted(self)
        return self.best_estimator_.predict_proba(X)

    def transform(self, X):
        """Component scores using the best estimator."""
        check_is_fitted(self)
        return self.best_estimator_.transform(X)

    def score(self, X, y):
        """Score using the best estimator (R² or accuracy)."""
        check_is_fitted(self)
        return self.best_estimator_.score(X, y)

    def get_cv_results_df(self):
        """Return cross-validation results as a pandas DataFrame."""
        check_is_fitted(self)

        results = {
            'threshold': self.cv_results_['param_threshold'],
            'thr_number': self.cv_results_['param_thr_number'],
            'Q': self.cv_results_['param_Q'],
            'mean_score': self.cv_results_['mean_test_score'],
            'se_score': self.cv_results_['se_test_score'],
            'rank': self.cv_results_['rank_test_score'],
        }

        df = pd.DataFrame(results)
        return df.sort_values(['rank', 'Q', 'thr_number'])

    def summary(self):
        """Print a summary of the cross-validation results."""
        check_is_fitted(self)
        solution = self.solution_

        print("=" * 60)
        print("GSPCRCV Summary")
        print("=" * 60)
        print(f"Family: {solution.family}")
        print(f"Fit measure: {solution.fit_measure}")
        print(f"Threshold type: {solution.threshold_type}")
        print(f"Folds: {solution.cube.n_folds}")
        print(f"Defined cells: {solution.surface.n_defined}/{solution.surface.mean.size}")

        print("\nSolutions:")
        for rule, row in self.sol_table_.iterrows():
            marker = " (refit)" if rule == self.refit_rule else ""
            print(f"  {rule}: threshold = {row['thr_value']:.4f} "
                  f"(#{int(row['thr_number'])}), Q = {int(row['Q'])}{marker}")

        print(f"\nRetained predictors: {len(self.active_set_)}/{self.n_features_in_}")
        for j in self.active_set_:
            print(f"  {self.feature_names_in_[j]}: {self.scores_[j]:.4f}")

        print(f"Converged: {self.converged_}")
        print("=" * 60)
