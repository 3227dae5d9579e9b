"""
Stratified Splitting

Train/test partitioning and k-fold assignment that preserve per-class
proportions. Both are pure functions of their inputs and seed.
"""

from typing import Tuple
import numpy as np
from sklearn.model_selection import StratifiedKFold

from data.dataset import LabeledDataset
from .errors import InputValidationError


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def stratified_split(
        dataset: LabeledDataset,
        train_fraction: float,
        seed: int
) -> Tuple[LabeledDataset, LabeledDataset]:
    """
    Split a dataset into train and test subsets, class by class.

    Each class's indices are shuffled with a generator seeded by ``seed``
    (classes visited in sorted label order) and the first
    round(train_fraction * class_count) go to the training subset.
    Both subsets keep the dataset's original row order.

    Args:
        dataset: Dataset to split
        train_fraction: Share of each class assigned to training, 0 < f < 1
        seed: Random seed

    Returns:
        Tuple of (train, test)

    Raises:
        InputValidationError: bad fraction, or a class with fewer than 2 samples
    """
    if not 0 < train_fraction < 1:
        raise InputValidationError(f"train_fraction must be in (0, 1), got {train_fraction}")

    counts = dataset.class_counts()
    too_small = {label: n for label, n in counts.items() if n < 2}
    if too_small:
        raise InputValidationError(f"Every class needs at least 2 samples, got {too_small}")

    rng = np.random.default_rng(seed)
    train_idx = []
    test_idx = []

    for label in dataset.classes:
        class_idx = rng.permutation(dataset.indices_of(label))
        n_train = _round_half_up(train_fraction * len(class_idx))
        train_idx.append(class_idx[:n_train])
        test_idx.append(class_idx[n_train:])

    train_idx = np.sort(np.concatenate(train_idx))
    test_idx = np.sort(np.concatenate(test_idx))

    train = dataset.subset(train_idx, name=f"{dataset.name}_train")
    test = dataset.subset(test_idx, name=f"{dataset.name}_test")
    return train, test


def stratified_fold_assignment(
        labels: np.ndarray,
        n_folds: int,
        seed: int
) -> np.ndarray:
    """
    Assign every sample to one of ``n_folds`` folds, stratified by class.

    Folds come from scikit-learn's StratifiedKFold with shuffling seeded by
    ``seed``, so per-class counts in any two folds differ by at most one.

    Args:
        labels: Label vector
        n_folds: Number of folds (>= 2)
        seed: Random seed

    Returns:
        Integer array of fold ids (0..n_folds-1), one per sample
    """
    labels = np.asarray(labels)
    if not isinstance(n_folds, (int, np.integer)) or n_folds < 2:
        raise InputValidationError(f"n_folds must be an integer >= 2, got {n_folds}")
    if n_folds > len(labels):
        raise InputValidationError(
            f"Cannot make {n_folds} folds from {len(labels)} samples"
        )

    splitter = StratifiedKFold(n_splits=int(n_folds), shuffle=True, random_state=seed)
    folds = np.empty(len(labels), dtype=int)
    try:
        for fold, (_, test_idx) in enumerate(splitter.split(np.zeros((len(labels), 1)), labels)):
            folds[test_idx] = fold
    except ValueError as err:
        raise InputValidationError(f"Cannot make {n_folds} stratified folds: {err}") from err

    return folds
