from dataclasses import dataclass
from typing import Any, Dict
import numpy as np
import pandas as pd

from data.dataset import LabeledDataset
from .classifiers import KNNClassifier
from .errors import InputValidationError
from .evaluation import GridSearchTuner, ModelEvaluator
from .thresholds import ThresholdSelector, curve_auc


@dataclass
class ExperimentResult:
    """Everything produced by one tune -> fit -> threshold -> evaluate run."""
    best_k: int
    classifier: KNNClassifier
    cv_scores: pd.DataFrame
    cv_summary: pd.DataFrame
    test_probabilities: np.ndarray
    best_threshold: float
    threshold_curve: pd.DataFrame
    auc: float
    metrics_default: Dict[str, Any]
    metrics_tuned: Dict[str, Any]
    positive_label: Any = 1
    negative_label: Any = 0

    def metrics_table(self) -> pd.DataFrame:
        """Test metrics at the default and the selected threshold, side by side."""
        rows = []
        for name, metrics in (('default_0.5', self.metrics_default), ('youden', self.metrics_tuned)):
            rows.append({
                'cutoff': name,
                'threshold': metrics['threshold'],
                'accuracy': metrics['accuracy'],
                'kappa': metrics['kappa'],
                'precision': metrics['precision'],
                'recall': metrics['recall'],
                'specificity': metrics['specificity'],
                'f1': metrics['f1'],
                'auc': metrics['auc'],
                'tp': metrics['tp'], 'fp': metrics['fp'], 'tn': metrics['tn'], 'fn': metrics['fn'],
                'undefined': ", ".join(metrics['undefined']),
            })
        return pd.DataFrame(rows)


class ExperimentManager:
    """
    Runs the modeling stage: k search on the training subset, refit,
    test-set probabilities, threshold selection and evaluation.
    """

    def __init__(self, config):
        self.config = config

    def run(self, train: LabeledDataset, test: LabeledDataset) -> ExperimentResult:
        cfg = self.config
        classes = train.classes
        if len(classes) != 2:
            raise InputValidationError(f"Binary labels expected, got {classes.tolist()}")
        positive_label = cfg.positive_label
        if positive_label not in classes:
            raise InputValidationError(
                f"Positive label {positive_label!r} not among classes {classes.tolist()}"
            )
        negative_label = classes[classes != positive_label][0]

        n_train, n_test = len(train), len(test)
        print(f"    🔍 CLASSIFIER DATA: train N = {n_train} | test N = {n_test} | "
              f"Balance (train): {train.class_counts()}")

        # 1. Tune
        clf = KNNClassifier(n_neighbors=min(cfg.k_grid), metric=cfg.metric, standardize=cfg.standardize)
        tuner = GridSearchTuner(
            cv_folds=cfg.cv_folds,
            n_repeats=cfg.cv_repeats,
            random_state=cfg.seed,
            n_jobs=cfg.n_jobs,
            tie_break=cfg.tie_break,
        )
        best_model, best_params = tuner.tune(clf, train.X, train.y, cfg.k_grid,
                                             feature_names=train.feature_names)

        # 2. Threshold on test probabilities
        scores = best_model.positive_scores(test.X, positive_label)
        selector = ThresholdSelector(grid=cfg.threshold_grid, tie_break=cfg.tie_break)
        best_threshold, curve = selector.select(scores, test.y, positive_label)
        print(f"    Youden-optimal threshold: {best_threshold:.3f} "
              f"(J = {curve.loc[curve['threshold'] == best_threshold, 'youden_j'].iloc[0]:.3f}, "
              f"AUC = {curve_auc(curve):.3f})")

        # 3. Evaluate
        evaluator = ModelEvaluator()
        metrics_default = evaluator.evaluate(best_model, test.X, test.y, positive_label,
                                             threshold=0.5, strict=cfg.strict_metrics)
        metrics_tuned = evaluator.evaluate(best_model, test.X, test.y, positive_label,
                                           threshold=best_threshold, strict=cfg.strict_metrics)
        print(f"    Test accuracy: {metrics_default['accuracy']:.3f} @0.50 | "
              f"{metrics_tuned['accuracy']:.3f} @{best_threshold:.2f}")

        return ExperimentResult(
            best_k=best_params['n_neighbors'],
            classifier=best_model,
            cv_scores=tuner.cv_results_,
            cv_summary=tuner.cv_summary_,
            test_probabilities=scores,
            best_threshold=best_threshold,
            threshold_curve=curve,
            auc=curve_auc(curve),
            metrics_default=metrics_default,
            metrics_tuned=metrics_tuned,
            positive_label=positive_label,
            negative_label=negative_label,
        )
