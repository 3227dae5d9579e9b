"""
Labeled Dataset Data Structure

This module defines the core data structures for a labeled tabular dataset:
a single Sample and the ordered, immutable LabeledDataset that holds them.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import numpy as np
import pandas as pd

from models.errors import InputValidationError


@dataclass(frozen=True, eq=False)
class Sample:
    """A single feature vector with its class label."""
    features: np.ndarray
    label: Any


class LabeledDataset:
    """
    Ordered collection of labeled samples.

    This is the core data structure that holds:
    - Numeric feature matrix, shape (n_samples, n_features)
    - Label vector, shape (n_samples,)
    - Feature names

    Both arrays are private copies flagged read-only, so a dataset never
    changes after construction. Subsets are new datasets, not views.

    Attributes:
        X (np.ndarray): Feature matrix
        y (np.ndarray): Labels
        feature_names (List[str]): One name per feature column
        name (str): Dataset name used in reports
    """

    def __init__(
        self,
        X: Any,
        y: Any,
        feature_names: Optional[Sequence[str]] = None,
        name: str = 'dataset'
    ):
        """
        Initialize a labeled dataset.

        Args:
            X: Feature matrix (array-like, 2D)
            y: Labels (array-like, 1D)
            feature_names: Optional feature names (default: feature_0 ...)
            name: Dataset name
        """
        X = np.array(X, dtype=float, copy=True)
        y = np.array(y, copy=True)

        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if X.ndim != 2:
            raise InputValidationError(f"Features must be 2D, got {X.ndim} dimensions")
        if y.ndim != 1:
            y = y.ravel()
        if len(X) != len(y):
            raise InputValidationError(
                f"Labels length ({len(y)}) must match features length ({len(X)})"
            )
        if len(X) == 0:
            raise InputValidationError("Dataset cannot be empty")
        if not np.all(np.isfinite(X)):
            raise InputValidationError("Features contain NaN or infinite values")

        if feature_names is None:
            feature_names = [f'feature_{i}' for i in range(X.shape[1])]
        feature_names = [str(f) for f in feature_names]
        if len(feature_names) != X.shape[1]:
            raise InputValidationError(
                f"Got {len(feature_names)} feature names for {X.shape[1]} features"
            )

        X.setflags(write=False)
        y.setflags(write=False)

        self._X = X
        self._y = y
        self._feature_names = feature_names
        self.name = name

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        label_column: str,
        feature_columns: Optional[List[str]] = None,
        name: str = 'dataset'
    ) -> 'LabeledDataset':
        """
        Create from a DataFrame with one label column.

        Args:
            df: Source table
            label_column: Column holding class labels
            feature_columns: Feature columns (None = every other numeric column)
            name: Dataset name

        Returns:
            LabeledDataset instance
        """
        if label_column not in df.columns:
            raise InputValidationError(f"Label column '{label_column}' not in data")

        if feature_columns is None:
            feature_columns = [
                col for col in df.select_dtypes(include=[np.number]).columns
                if col != label_column
            ]
        missing = [col for col in feature_columns if col not in df.columns]
        if missing:
            raise InputValidationError(f"Feature columns not in data: {missing}")
        if not feature_columns:
            raise InputValidationError("No numeric feature columns found")

        return cls(
            df[feature_columns].to_numpy(dtype=float),
            df[label_column].to_numpy(),
            feature_names=feature_columns,
            name=name
        )

    @property
    def X(self) -> np.ndarray:
        """Read-only feature matrix."""
        return self._X

    @property
    def y(self) -> np.ndarray:
        """Read-only label vector."""
        return self._y

    @property
    def feature_names(self) -> List[str]:
        return list(self._feature_names)

    @property
    def n_samples(self) -> int:
        return len(self._y)

    @property
    def n_features(self) -> int:
        return self._X.shape[1]

    @property
    def classes(self) -> np.ndarray:
        """Sorted distinct labels."""
        return np.unique(self._y)

    def class_counts(self) -> Dict[Any, int]:
        """
        Get number of samples per class.

        Returns:
            Dict mapping label -> count, in sorted label order
        """
        labels, counts = np.unique(self._y, return_counts=True)
        return {label.item() if hasattr(label, 'item') else label: int(n)
                for label, n in zip(labels, counts)}

    def class_proportions(self) -> Dict[Any, float]:
        return {label: n / self.n_samples for label, n in self.class_counts().items()}

    def indices_of(self, label: Any) -> np.ndarray:
        """Indices of all samples with the given label, in dataset order."""
        return np.flatnonzero(self._y == label)

    def sample(self, index: int) -> Sample:
        features = self._X[index].copy()
        features.setflags(write=False)
        return Sample(features=features, label=self._y[index])

    def subset(self, indices: Sequence[int], name: Optional[str] = None) -> 'LabeledDataset':
        """
        Create a new dataset holding the given rows, in the given order.

        Args:
            indices: Row indices
            name: Name of the new dataset (default: same name)

        Returns:
            New LabeledDataset
        """
        indices = np.asarray(indices, dtype=int)
        return LabeledDataset(
            self._X[indices],
            self._y[indices],
            feature_names=self._feature_names,
            name=name or self.name
        )

    def to_frame(self, label_column: str = 'label') -> pd.DataFrame:
        """Export as a DataFrame (features + label column)."""
        df = pd.DataFrame(self._X, columns=self._feature_names)
        df[label_column] = self._y
        return df

    def __len__(self) -> int:
        return self.n_samples

    def __iter__(self):
        for i in range(self.n_samples):
            yield self.sample(i)

    def __repr__(self) -> str:
        return (
            f"LabeledDataset(name='{self.name}', "
            f"n_samples={self.n_samples}, "
            f"n_features={self.n_features}, "
            f"classes={self.class_counts()})"
        )
