"""
Utility functions for GSPCR.

Provides:
- Latent-factor data generation for every supported outcome family
"""

import numpy as np
import pandas as pd
from scipy.special import expit, softmax
from sklearn.utils import check_random_state

from .regression.families import FAMILY_ALIASES, FAMILIES


def _outcome_from_signal(eta, family, noise, n_levels, rng):
    n = len(eta)
    if family == 'gaussian':
        return eta + noise * rng.standard_normal(n)
    if family == 'binomial':
        return rng.binomial(1, expit(eta))
    if family == 'poisson':
        return rng.poisson(np.exp(0.5 * eta))
    if family == 'multinomial':
        slopes = np.arange(n_levels) - (n_levels - 1) / 2
        probs = softmax(np.outer(eta, slopes), axis=1)
        classes = np.array([rng.choice(n_levels, p=p) for p in probs])
        return np.array([f'class{c + 1}' for c in classes])

    # cumulative: logistic latent response cut at its quantiles
    latent = eta + rng.logistic(size=n)
    cuts = np.quantile(latent, np.linspace(0, 1, n_levels + 1)[1:-1])
    labels = [f'level{j + 1}' for j in range(n_levels)]
    codes = np.searchsorted(cuts, latent)
    return pd.Series(pd.Categorical.from_codes(codes, categories=labels, ordered=True),
                     name='y')


def generate_gspcr_data(
    n_samples=100,
    n_features=50,
    n_informative=10,
    n_latent=1,
    family='gaussian',
    loading=1.0,
    effect=1.0,
    noise=1.0,
    n_discrete=0,
    n_levels=3,
    random_state=None
):
    """
    Generate data where a few predictors share latent factors that drive the outcome.

    Model:
        F ~ N(0, I) with ``n_latent`` columns
        X_j = loading * F[:, j % n_latent] + e_j   for informative predictors
        X_j = e_j                                  otherwise
        eta = effect * F.sum(axis=1)
        y ~ family(eta)

    Parameters
    ----------
    n_samples : int, default=100
        Number of observations.

    n_features : int, default=50
        Number of predictors.

    n_informative : int, default=10
        Number of predictors loading on the latent factors (the first columns).

    n_latent : int, default=1
        Number of latent factors.

    family : str, default='gaussian'
        Outcome family: 'gaussian', 'binomial', 'poisson', 'multinomial' or
        'cumulative'.

    loading : float, default=1.0
        Loading of the informative predictors on their factor.

    effect : float, default=1.0
        Effect of each factor on the linear predictor.

    noise : float, default=1.0
        Standard deviation of the gaussian outcome error.

    n_discrete : int, default=0
        Number of informative predictors discretized into ``n_levels``
        unordered categories. When positive, X is returned as a DataFrame
        with categorical columns.

    n_levels : int, default=3
        Number of categories of discretized predictors and of multinomial /
        cumulative outcomes.

    random_state : int, RandomState instance or None, default=None
        Random seed for reproducibility.

    Returns
    -------
    data : dict
        Dictionary containing:
        - 'X': Predictors (ndarray, or DataFrame when ``n_discrete > 0``)
        - 'y': Outcome (ndarray; ordered categorical Series for 'cumulative')
        - 'latent': Latent factors F
        - 'informative': Indices of the informative predictors
        - 'params': Dict of generating parameters

    Examples
    --------
    >>> data = generate_gspcr_data(n_samples=50, n_features=20, random_state=42)
    >>> data['X'].shape
    (50, 20)
    """
    family = FAMILY_ALIASES.get(family, family)
    if family not in FAMILIES:
        raise ValueError(f"Unknown family '{family}'. Use {list(FAMILIES)}.")
    if not 0 <= n_informative <= n_features:
        raise ValueError("n_informative must be between 0 and n_features")
    if not 0 <= n_discrete <= n_informative:
        raise ValueError("n_discrete must be between 0 and n_informative")

    rng = check_random_state(random_state)

    latent = rng.standard_normal((n_samples, n_latent))
    X = rng.standard_normal((n_samples, n_features))
    for j in range(n_informative):
        X[:, j] += loading * latent[:, j % n_latent]

    eta = effect * latent.sum(axis=1)
    y = _outcome_from_signal(eta, family, noise, n_levels, rng)

    if n_discrete > 0:
        X = pd.DataFrame(X, columns=[f'X{j + 1}' for j in range(n_features)])
        labels = [chr(ord('a') + k) for k in range(n_levels)]
        for j in range(n_discrete):
            col = X.columns[j]
            X[col] = pd.qcut(X[col], n_levels, labels=labels).astype(str).astype('category')

    return {
        'X': X,
        'y': y,
        'latent': latent,
        'informative': np.arange(n_informative),
        'params': {
            'family': family,
            'n_latent': n_latent,
            'loading': loading,
            'effect': effect,
            'noise': noise,
        }
    }
