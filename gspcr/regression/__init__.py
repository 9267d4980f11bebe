"""
GSPCR outcome-model module.

This module provides the final GSPCR estimator along with the outcome
families and fit measures used to score (threshold, Q) configurations.
"""

from .estimator import GSPCR, prepare_gspcr_data

# Re-export helper functions for advanced usage
from .families import (
    Family,
    OutcomeFit,
    GaussianFamily,
    BinomialFamily,
    PoissonFamily,
    MultinomialFamily,
    CumulativeFamily,
    FAMILIES,
    get_family,
)
from .measures import (
    get_fit_measure,
    measure_orientation,
    lrt,
    pseudo_r2,
    f_statistic,
    mse,
    aic,
    bic,
    FIT_MEASURES,
)

__all__ = [
    # Main class
    'GSPCR',
    'prepare_gspcr_data',
    # Families
    'Family',
    'OutcomeFit',
    'GaussianFamily',
    'BinomialFamily',
    'PoissonFamily',
    'MultinomialFamily',
    'CumulativeFamily',
    'FAMILIES',
    'get_family',
    # Fit measures
    'get_fit_measure',
    'measure_orientation',
    'lrt',
    'pseudo_r2',
    'f_statistic',
    'mse',
    'aic',
    'bic',
    'FIT_MEASURES',
]
