"""
Model Evaluation and Tuning

Repeated stratified k-fold search over k, and standard evaluation of
binary predictions (confusion matrix and derived metrics).
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Sequence, Tuple
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.metrics import confusion_matrix
from tqdm import tqdm

from data.dataset import LabeledDataset
from .classifiers import KNNClassifier, fit, kneighbors, validate_k, vote_proportions
from .errors import InputValidationError, InsufficientDataError, UndefinedMetricError
from .splitting import stratified_fold_assignment
from .thresholds import ThresholdSelector, curve_auc, pick_best


@dataclass(frozen=True)
class ConfusionMatrix:
    """
    2x2 confusion counts for a binary problem.

    All derived metrics are pure functions of the four counts and raise
    UndefinedMetricError when their denominator is zero.
    """
    tp: int
    fp: int
    tn: int
    fn: int

    @classmethod
    def from_labels(cls, predicted_labels: Any, true_labels: Any, positive_label: Any = 1) -> 'ConfusionMatrix':
        predicted_labels = np.asarray(predicted_labels)
        true_labels = np.asarray(true_labels)
        if len(predicted_labels) != len(true_labels):
            raise InputValidationError(
                f"Got {len(predicted_labels)} predictions for {len(true_labels)} labels"
            )
        distinct = np.union1d(np.unique(predicted_labels), np.unique(true_labels))
        if len(distinct) > 2:
            raise InputValidationError(f"Expected a binary problem, got labels {distinct.tolist()}")

        # rows: actual negative/positive, columns: predicted negative/positive
        cm = confusion_matrix(true_labels == positive_label, predicted_labels == positive_label,
                              labels=[False, True])
        tn, fp, fn, tp = (int(v) for v in cm.ravel())
        return cls(tp=tp, fp=fp, tn=tn, fn=fn)

    @property
    def n(self) -> int:
        return self.tp + self.fp + self.tn + self.fn

    @staticmethod
    def _ratio(metric: str, num: float, den: float, reason: str) -> float:
        if den == 0:
            raise UndefinedMetricError(metric, reason)
        return num / den

    @property
    def accuracy(self) -> float:
        return self._ratio('accuracy', self.tp + self.tn, self.n, "no samples")

    @property
    def precision(self) -> float:
        return self._ratio('precision', self.tp, self.tp + self.fp, "no predicted positives")

    @property
    def recall(self) -> float:
        return self._ratio('recall', self.tp, self.tp + self.fn, "no actual positives")

    @property
    def specificity(self) -> float:
        return self._ratio('specificity', self.tn, self.tn + self.fp, "no actual negatives")

    @property
    def f1(self) -> float:
        precision, recall = self.precision, self.recall
        return self._ratio('f1', 2 * precision * recall, precision + recall,
                           "precision and recall are both zero")

    @property
    def kappa(self) -> float:
        n = self.n
        if n == 0:
            raise UndefinedMetricError('kappa', "no samples")
        observed = (self.tp + self.tn) / n
        expected = ((self.tp + self.fp) * (self.tp + self.fn) + (self.tn + self.fn) * (self.tn + self.fp)) / n ** 2
        return self._ratio('kappa', observed - expected, 1 - expected,
                           "expected agreement is 1 (a single class on both sides)")

    def to_frame(self, negative_label: Any = 0, positive_label: Any = 1) -> pd.DataFrame:
        """Counts as a labeled 2x2 table (rows actual, columns predicted)."""
        return pd.DataFrame(
            [[self.tn, self.fp], [self.fn, self.tp]],
            index=[f'actual_{negative_label}', f'actual_{positive_label}'],
            columns=[f'predicted_{negative_label}', f'predicted_{positive_label}'],
        )

    def to_array(self) -> np.ndarray:
        return np.array([[self.tn, self.fp], [self.fn, self.tp]])


METRIC_NAMES = ('accuracy', 'precision', 'recall', 'specificity', 'f1', 'kappa')


def evaluate(
        predicted_labels: Any,
        true_labels: Any,
        positive_label: Any = 1,
        strict: bool = True
) -> Dict[str, Any]:
    """
    Confusion matrix and derived metrics for binary predictions.

    Args:
        predicted_labels: Predicted class labels
        true_labels: Ground-truth labels
        positive_label: Label of the positive class
        strict: Raise UndefinedMetricError on a zero denominator. When False
                the metric is reported as NaN and named in 'undefined'.

    Returns:
        Dict with tp, fp, tn, fn, confusion_matrix, the metrics in
        METRIC_NAMES and 'undefined' (list of metric names)
    """
    cm = ConfusionMatrix.from_labels(predicted_labels, true_labels, positive_label)
    results: Dict[str, Any] = {
        'tp': cm.tp, 'fp': cm.fp, 'tn': cm.tn, 'fn': cm.fn,
        'confusion_matrix': cm,
        'undefined': [],
    }
    for name in METRIC_NAMES:
        try:
            results[name] = getattr(cm, name)
        except UndefinedMetricError:
            if strict:
                raise
            results[name] = np.nan
            results['undefined'].append(name)
    return results


def cohen_kappa(predicted_labels: np.ndarray, true_labels: np.ndarray, labels: Sequence[Any]) -> float:
    """
    Cohen's kappa for any number of classes.

    Raises:
        UndefinedMetricError: if expected agreement is 1
    """
    cm = confusion_matrix(true_labels, predicted_labels, labels=list(labels)).astype(float)
    n = cm.sum()
    if n == 0:
        raise UndefinedMetricError('kappa', "no samples")
    observed = np.trace(cm) / n
    expected = np.sum(cm.sum(axis=0) * cm.sum(axis=1)) / n ** 2
    if expected == 1:
        raise UndefinedMetricError('kappa', "expected agreement is 1 (a single class on both sides)")
    return float((observed - expected) / (1 - expected))


def validate_k_grid(k_grid: Sequence[int]) -> List[int]:
    """Check the grid is non-empty, duplicate-free, and every k odd and >= 1."""
    grid = [validate_k(k) for k in k_grid]
    if not grid:
        raise InputValidationError("k_grid must contain at least one value")
    if len(set(grid)) != len(grid):
        raise InputValidationError(f"k_grid contains duplicates: {grid}")
    return grid


def _score_fold(
        X: np.ndarray,
        y: np.ndarray,
        classes: np.ndarray,
        train_idx: np.ndarray,
        test_idx: np.ndarray,
        k_grid: List[int],
        repeat: int,
        fold: int,
        metric: str,
        standardize: bool
) -> List[Dict[str, Any]]:
    """Score every k on one held-out fold. Neighbors are found once, for the largest k."""
    max_k = max(k_grid)
    model = fit(max_k, X[train_idx], y[train_idx], classes=classes,
                metric=metric, standardize=standardize)
    _, neighbors = kneighbors(model, X[test_idx], n_neighbors=max_k)
    neighbor_labels = model.labels[neighbors]
    y_test = y[test_idx]

    records = []
    for k in k_grid:
        proba = vote_proportions(neighbor_labels[:, :k], classes)
        y_pred = classes[np.argmax(proba, axis=1)]
        try:
            kappa = cohen_kappa(y_pred, y_test, classes)
        except UndefinedMetricError:
            kappa = np.nan
        records.append({
            'k': k,
            'repeat': repeat,
            'fold': fold,
            'accuracy': float(np.mean(y_pred == y_test)),
            'kappa': kappa,
        })
    return records


def repeated_cv_search(
        train_data: LabeledDataset,
        k_grid: Sequence[int],
        folds: int = 10,
        repeats: int = 10,
        seed: int = 42,
        metric: str = 'euclidean',
        standardize: bool = False,
        n_jobs: int = 1,
        tie_break: str = 'smallest',
        show_progress: bool = False
) -> Tuple[int, pd.DataFrame]:
    """
    Tune k by repeated stratified k-fold cross-validation.

    Repeat r draws its fold assignment with seed ``seed + r``. Every
    (repeat, fold) pair is an independent task run through joblib; all
    inputs are validated before the first task starts, and any task error
    aborts the search.

    Args:
        train_data: Training dataset
        k_grid: Candidate k values (odd, >= 1)
        folds: Folds per repeat
        repeats: Number of repeats
        seed: Base random seed
        metric: Distance metric
        standardize: Standardize features within each training fold
        n_jobs: joblib worker count
        tie_break: Which k wins equal mean accuracy ('smallest' or 'largest')
        show_progress: Show a tqdm progress bar

    Returns:
        Tuple of (best_k, score table with one row per (k, repeat, fold))

    Raises:
        InputValidationError: bad grid, fold or repeat count, or k too large
        InsufficientDataError: a training partition lacks a class
    """
    grid = validate_k_grid(k_grid)
    if not isinstance(repeats, (int, np.integer)) or repeats < 1:
        raise InputValidationError(f"repeats must be an integer >= 1, got {repeats}")

    X, y = train_data.X, train_data.y
    classes = train_data.classes

    tasks = []
    for repeat in range(repeats):
        assignment = stratified_fold_assignment(y, folds, seed + repeat)
        for fold in range(folds):
            train_idx = np.flatnonzero(assignment != fold)
            test_idx = np.flatnonzero(assignment == fold)

            missing = np.setdiff1d(classes, np.unique(y[train_idx]))
            if len(missing) > 0:
                raise InsufficientDataError(
                    f"Repeat {repeat}, fold {fold}: no training samples for class(es) {missing.tolist()}"
                )
            if max(grid) > len(train_idx):
                raise InputValidationError(
                    f"k={max(grid)} exceeds the {len(train_idx)} training samples of "
                    f"repeat {repeat}, fold {fold}"
                )
            tasks.append((repeat, fold, train_idx, test_idx))

    jobs = (
        delayed(_score_fold)(X, y, classes, train_idx, test_idx, grid, repeat, fold, metric, standardize)
        for repeat, fold, train_idx, test_idx in tqdm(tasks, desc="CV search", disable=not show_progress)
    )
    results = Parallel(n_jobs=n_jobs)(jobs)

    scores = pd.DataFrame([record for records in results for record in records])
    summary = summarize_scores(scores)
    best = pick_best(summary['mean_accuracy'].to_numpy(), summary['k'].to_numpy(), tie_break)
    return int(summary['k'].iloc[best]), scores


def summarize_scores(scores: pd.DataFrame) -> pd.DataFrame:
    """Mean and standard deviation of accuracy and kappa per k."""
    summary = scores.groupby('k').agg(
        mean_accuracy=('accuracy', 'mean'),
        std_accuracy=('accuracy', 'std'),
        mean_kappa=('kappa', 'mean'),
        std_kappa=('kappa', 'std'),
        n_scores=('accuracy', 'size'),
    )
    return summary.reset_index()


class GridSearchTuner:
    """Hyperparameter tuner using repeated stratified k-fold grid search over k."""

    def __init__(
            self,
            cv_folds: int = 10,
            n_repeats: int = 10,
            random_state: int = 42,
            n_jobs: int = 1,
            tie_break: str = 'smallest',
            verbose: bool = True
    ):
        self.cv_folds = cv_folds
        self.n_repeats = n_repeats
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.tie_break = tie_break
        self.verbose = verbose
        self.cv_results_: Optional[pd.DataFrame] = None
        self.cv_summary_: Optional[pd.DataFrame] = None
        self.best_params_: Optional[Dict[str, Any]] = None

    def tune(
            self,
            classifier: KNNClassifier,
            X: np.ndarray,
            y: np.ndarray,
            k_grid: Sequence[int],
            feature_names: Optional[Sequence[str]] = None
    ) -> Tuple[KNNClassifier, Dict[str, Any]]:
        """
        Search k and retrain the classifier on all of X with the best value.

        Args:
            classifier: KNNClassifier to tune (metric and scaling are kept)
            X: Feature matrix
            y: Labels
            k_grid: Candidate k values (e.g. [1, 3, 5, 7])
            feature_names: Column names kept on the retrained classifier

        Returns:
            Tuple of (Trained Best Classifier, Best Params Dict)
        """
        if self.verbose:
            print(f"Tuning {classifier.name} over k={list(k_grid)} "
                  f"({self.n_repeats} x {self.cv_folds}-fold CV)...")

        train_data = LabeledDataset(X, y, feature_names=feature_names)
        best_k, scores = repeated_cv_search(
            train_data,
            k_grid,
            folds=self.cv_folds,
            repeats=self.n_repeats,
            seed=self.random_state,
            metric=classifier.metric,
            standardize=classifier.standardize,
            n_jobs=self.n_jobs,
            tie_break=self.tie_break,
            show_progress=self.verbose
        )

        self.cv_results_ = scores
        self.cv_summary_ = summarize_scores(scores)
        self.best_params_ = {'n_neighbors': best_k}

        classifier.set_params(n_neighbors=best_k)
        classifier.train(train_data.X, train_data.y, feature_names=train_data.feature_names)
        classifier.best_params = self.best_params_

        if self.verbose:
            best_row = self.cv_summary_[self.cv_summary_['k'] == best_k].iloc[0]
            print(f"    Best k={best_k}: mean accuracy {best_row['mean_accuracy']:.3f} "
                  f"(± {best_row['std_accuracy']:.3f})")

        return classifier, self.best_params_


class ModelEvaluator:
    """Standard model evaluator."""

    def evaluate(
            self,
            classifier: KNNClassifier,
            X_test: np.ndarray,
            y_test: np.ndarray,
            positive_label: Any = 1,
            threshold: float = 0.5,
            strict: bool = False
    ) -> Dict[str, Any]:
        """
        Compute comprehensive performance metrics at a decision threshold.
        """
        if not classifier.is_trained:
            raise ValueError("Classifier not trained")
        if len(classifier.classes) != 2:
            raise InputValidationError(
                f"Binary classifier expected, got classes {classifier.classes.tolist()}"
            )

        scores = classifier.positive_scores(X_test, positive_label)
        negative_label = classifier.classes[classifier.classes != positive_label][0]
        y_pred = np.where(scores >= threshold, positive_label, negative_label)

        results = evaluate(y_pred, y_test, positive_label=positive_label, strict=strict)
        results['threshold'] = threshold
        try:
            results['auc'] = curve_auc(ThresholdSelector().curve(scores, y_test, positive_label))
        except UndefinedMetricError:
            if strict:
                raise
            results['auc'] = np.nan
            results['undefined'].append('auc')
        return results
