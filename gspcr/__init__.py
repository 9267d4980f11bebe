"""
Generalized Supervised Principal Component Regression
=====================================================

A scikit-learn compatible implementation of supervised principal component
regression for mixed-type predictors and generalized linear outcome models.
Predictors are screened by their association with the outcome, the retained
predictors are summarized by principal components, and the outcome is
regressed on those components. The screening threshold and the number of
components are chosen by K-fold cross-validation.

Main Classes
------------
GSPCR : Final model for a fixed threshold and number of components
GSPCRCV : Cross-validated version with automatic selection

Quick Start
-----------
>>> import gspcr
>>> from gspcr import cv_gspcr, GSPCRCV
>>>
>>> # Cross-validate threshold and number of components
>>> solution = cv_gspcr(y, X, fit_measure='BIC', n_folds=5)
>>> print(solution.sol_table)
>>>
>>> # Or fit the selected model directly
>>> model = GSPCRCV(family='binomial', refit_rule='oneSE').fit(X, y)
>>> model.predict(X_new)
"""

from .regression import GSPCR
from .cv import GSPCRCV, cv_gspcr
from .config import GSPCRConfig
from .exceptions import GSPCRConfigurationError, NoValidSolutionError, CellFitError
from .variables import VariableType, infer_column_types, resolve_column_types, encode_predictors
from .folds import make_folds, iter_folds
from .screening import (
    compute_association_scores,
    build_threshold_grid,
    select_active_set,
    SCREENING_STATISTICS,
)
from .components import ComponentExtractor, extract_components
from .regression.families import FAMILIES, get_family, OutcomeFit
from .regression.measures import FIT_MEASURES, get_fit_measure, measure_orientation
from .selection import select_standard, select_one_se, build_solution_table
from .results import CellStatus, ResultsCube, SolutionSurface, GSPCRSolution
from .plotting import plot_gspcr_cv
from .utils import generate_gspcr_data

__version__ = "0.1.0"

__all__ = [
    # Core classes
    'GSPCR',
    'GSPCRCV',
    'cv_gspcr',
    'GSPCRConfig',

    # Errors
    'GSPCRConfigurationError',
    'NoValidSolutionError',
    'CellFitError',

    # Variables and folds
    'VariableType',
    'infer_column_types',
    'resolve_column_types',
    'encode_predictors',
    'make_folds',
    'iter_folds',

    # Screening and components
    'compute_association_scores',
    'build_threshold_grid',
    'select_active_set',
    'SCREENING_STATISTICS',
    'ComponentExtractor',
    'extract_components',

    # Outcome models
    'FAMILIES',
    'get_family',
    'OutcomeFit',
    'FIT_MEASURES',
    'get_fit_measure',
    'measure_orientation',

    # Selection and results
    'select_standard',
    'select_one_se',
    'build_solution_table',
    'CellStatus',
    'ResultsCube',
    'SolutionSurface',
    'GSPCRSolution',

    # Plotting and utilities
    'plot_gspcr_cv',
    'generate_gspcr_data',
]
