"""
Classifiers

Distance-based nearest-neighbor classifier. Fitting stores an owned,
read-only snapshot of the training data; prediction votes among the k
closest training points.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import warnings
import numpy as np
import joblib
from scipy.spatial.distance import cdist
from sklearn.preprocessing import StandardScaler

from .errors import InputValidationError

# Metric names accepted by fit(), mapped to scipy cdist metric names
SUPPORTED_METRICS = {
    'euclidean': 'euclidean',
    'manhattan': 'cityblock',
}


@dataclass(frozen=True, eq=False)
class NeighborModel:
    """
    Fitted nearest-neighbor model.

    Non-parametric: "training" is storage. The arrays are private copies
    flagged read-only, already standardized when a scaler is present.
    """
    k: int
    features: np.ndarray
    labels: np.ndarray
    classes: np.ndarray
    metric: str = 'euclidean'
    scaler: Optional[StandardScaler] = None

    @property
    def n_train(self) -> int:
        return len(self.labels)


def validate_k(k: Any, n_train: Optional[int] = None) -> int:
    """
    Check that k is an odd positive integer (and fits the training set).

    Returns:
        k as a plain int
    """
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise InputValidationError(f"k must be an integer, got {k!r}")
    if k < 1 or k % 2 == 0:
        raise InputValidationError(f"k must be odd and >= 1, got {k}")
    if n_train is not None and k > n_train:
        raise InputValidationError(f"k={k} exceeds the {n_train} available training samples")
    return int(k)


def _readonly(array: np.ndarray) -> np.ndarray:
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


def fit(
        k: int,
        X: np.ndarray,
        y: np.ndarray,
        classes: Optional[np.ndarray] = None,
        metric: str = 'euclidean',
        standardize: bool = False
) -> NeighborModel:
    """
    Fit a nearest-neighbor model.

    Args:
        k: Number of neighbors (odd, >= 1, <= training size)
        X: Training features, shape (n_train, n_features)
        y: Training labels, shape (n_train,)
        classes: Class order for probability columns (None = sorted labels of y)
        metric: 'euclidean' or 'manhattan'
        standardize: Scale features to zero mean / unit variance using training statistics

    Returns:
        NeighborModel
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y)
    if X.ndim != 2:
        raise InputValidationError(f"Training features must be 2D, got {X.ndim} dimensions")
    if len(X) != len(y):
        raise InputValidationError(
            f"Labels length ({len(y)}) must match features length ({len(X)})"
        )
    k = validate_k(k, len(y))

    if metric not in SUPPORTED_METRICS:
        raise InputValidationError(
            f"Unknown metric '{metric}', expected one of {sorted(SUPPORTED_METRICS)}"
        )

    if classes is None:
        classes = np.unique(y)
    else:
        classes = np.asarray(classes)
        unknown = np.setdiff1d(np.unique(y), classes)
        if len(unknown) > 0:
            raise InputValidationError(f"Training labels {unknown.tolist()} not in classes")

    scaler = None
    if standardize:
        scaler = StandardScaler().fit(X)
        X = scaler.transform(X)

    return NeighborModel(
        k=k,
        features=_readonly(X),
        labels=_readonly(y),
        classes=_readonly(classes),
        metric=metric,
        scaler=scaler
    )


def _prepare_queries(model: NeighborModel, X: np.ndarray) -> np.ndarray:
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(1, -1)
    if X.shape[1] != model.features.shape[1]:
        raise InputValidationError(
            f"Query has {X.shape[1]} features, model was fit on {model.features.shape[1]}"
        )
    if model.scaler is not None:
        X = model.scaler.transform(X)
    return X


def kneighbors(
        model: NeighborModel,
        X: np.ndarray,
        n_neighbors: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the nearest training points for each query.

    Ties in distance keep the original training order (stable sort), so
    among equidistant points the first seen wins.

    Args:
        model: Fitted model
        X: Queries, shape (n_queries, n_features)
        n_neighbors: Neighbors to return (None = model.k)

    Returns:
        Tuple of (distances, indices), each shape (n_queries, n_neighbors)
    """
    if n_neighbors is None:
        n_neighbors = model.k
    if not 1 <= n_neighbors <= model.n_train:
        raise InputValidationError(
            f"n_neighbors={n_neighbors} must be between 1 and {model.n_train}"
        )

    queries = _prepare_queries(model, X)
    distances = cdist(queries, model.features, metric=SUPPORTED_METRICS[model.metric])
    order = np.argsort(distances, axis=1, kind='stable')[:, :n_neighbors]
    return np.take_along_axis(distances, order, axis=1), order


def vote_proportions(neighbor_labels: np.ndarray, classes: np.ndarray) -> np.ndarray:
    """
    Class membership probabilities from neighbor labels.

    Args:
        neighbor_labels: Labels of the neighbors, shape (n_queries, k)
        classes: Class order for the output columns

    Returns:
        Array of shape (n_queries, n_classes); each row sums to 1
    """
    k = neighbor_labels.shape[1]
    return np.stack([(neighbor_labels == c).sum(axis=1) / k for c in classes], axis=1)


def predict_proba(model: NeighborModel, X: np.ndarray) -> np.ndarray:
    """Fraction of the k nearest neighbors belonging to each class."""
    _, indices = kneighbors(model, X)
    return vote_proportions(model.labels[indices], model.classes)


def predict(model: NeighborModel, X: np.ndarray) -> np.ndarray:
    """Majority-vote class labels."""
    proba = predict_proba(model, X)
    return model.classes[np.argmax(proba, axis=1)]


class KNNClassifier:
    """K-Nearest Neighbors classifier with the model layer's train/predict interface."""

    def __init__(self, n_neighbors: int = 5, metric: str = 'euclidean', standardize: bool = False):
        self.name = "KNN"
        self.n_neighbors = validate_k(n_neighbors)
        self.metric = metric
        self.standardize = standardize
        self.model: Optional[NeighborModel] = None
        self.is_trained = False
        self.feature_names: Optional[List[str]] = None
        self.classes: Optional[np.ndarray] = None
        self.best_params: Optional[Dict] = None

    def get_params(self) -> Dict[str, Any]:
        return {
            'n_neighbors': self.n_neighbors,
            'metric': self.metric,
            'standardize': self.standardize,
        }

    def set_params(self, **params) -> 'KNNClassifier':
        for key, value in params.items():
            if key not in self.get_params():
                raise InputValidationError(f"Unknown parameter '{key}' for {self.name}")
            if key == 'n_neighbors':
                value = validate_k(value)
            setattr(self, key, value)
        return self

    def train(self, X: np.ndarray, y: np.ndarray, feature_names: List[str] = None,
              classes: Optional[np.ndarray] = None) -> 'KNNClassifier':
        self.model = fit(self.n_neighbors, X, y, classes=classes,
                         metric=self.metric, standardize=self.standardize)
        self.is_trained = True
        self.classes = self.model.classes
        if feature_names:
            self.feature_names = list(feature_names)
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Make class predictions."""
        if not self.is_trained:
            raise ValueError(f"{self.name} is not trained.")
        return predict(self.model, X)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Predict class probabilities."""
        if not self.is_trained:
            raise ValueError(f"{self.name} is not trained.")
        return predict_proba(self.model, X)

    def positive_scores(self, X: np.ndarray, positive_label: Any) -> np.ndarray:
        """Probability column of the positive class."""
        matches = np.flatnonzero(self.classes == positive_label)
        if len(matches) == 0:
            raise InputValidationError(
                f"Positive label {positive_label!r} not among classes {self.classes.tolist()}"
            )
        return self.predict_proba(X)[:, matches[0]]

    def save(self, filepath: str) -> None:
        """Save trained model to disk."""
        if not self.is_trained:
            warnings.warn("Saving untrained model.")
        joblib.dump(self, filepath)

    @staticmethod
    def load(filepath: str) -> 'KNNClassifier':
        """Load model from disk."""
        return joblib.load(filepath)

    def __repr__(self) -> str:
        return f"KNNClassifier(n_neighbors={self.n_neighbors}, metric='{self.metric}', standardize={self.standardize})"
