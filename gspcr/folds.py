"""
K-fold assignment for the GSPCR cross-validation loop.
"""

import numpy as np
from sklearn.model_selection import KFold

from .exceptions import GSPCRConfigurationError


def make_folds(n_samples, n_folds, random_state=None):
    """Assign every observation to one of ``n_folds`` folds.

    Parameters
    ----------
    n_samples : int
        Number of observations N.
    n_folds : int
        Number of folds K. ``K=1`` puts every observation in fold 0, which
        then serves as both training and test set (no cross-validation).
    random_state : int, RandomState instance or None, default=None
        Seed for the shuffled assignment when ``K > 1``.

    Returns
    -------
    fold_ids : ndarray of shape (n_samples,)
        Fold id in ``0..K-1`` per observation. Fold sizes differ by at most one.

    Raises
    ------
    GSPCRConfigurationError
        If ``K < 1`` or ``K > N``.

    Examples
    --------
    >>> make_folds(7, 3, random_state=0)  # doctest: +SKIP
    array([2, 0, 1, 0, 1, 2, 0])
    """
    if int(n_folds) != n_folds or n_folds < 1:
        raise GSPCRConfigurationError(f"n_folds must be a positive integer, got {n_folds}")
    if n_folds > n_samples:
        raise GSPCRConfigurationError(
            f"n_folds={n_folds} is larger than the number of observations ({n_samples})"
        )

    fold_ids = np.zeros(n_samples, dtype=int)
    if n_folds == 1:
        return fold_ids

    splitter = KFold(n_splits=int(n_folds), shuffle=True, random_state=random_state)
    for fold, (_, test_index) in enumerate(splitter.split(np.empty((n_samples, 1)))):
        fold_ids[test_index] = fold
    return fold_ids


def iter_folds(fold_ids):
    """Yield ``(fold, train_index, test_index)`` for every fold.

    With a single fold the training and test indices are the same array.
    """
    fold_ids = np.asarray(fold_ids)
    folds = np.unique(fold_ids)

    if len(folds) == 1:
        index = np.arange(len(fold_ids))
        yield int(folds[0]), index, index
        return

    for fold in folds:
        yield int(fold), np.flatnonzero(fold_ids != fold), np.flatnonzero(fold_ids == fold)
