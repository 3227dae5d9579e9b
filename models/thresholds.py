"""
Threshold Selection

Sweeps a decision threshold over predicted positive-class probabilities and
picks the cutoff maximizing Youden's J (sensitivity + specificity - 1).
"""

from typing import Any, Optional, Sequence, Tuple
import numpy as np
import pandas as pd
from sklearn.metrics import auc

from .errors import InputValidationError, UndefinedMetricError

TIE_BREAKS = ('smallest', 'largest')


def _binary_truth(true_labels: Any, positive_label: Any) -> np.ndarray:
    is_positive = np.asarray(true_labels) == positive_label
    if not is_positive.any():
        raise UndefinedMetricError('sensitivity', f"no samples with label {positive_label!r}")
    if is_positive.all():
        raise UndefinedMetricError('specificity', f"every sample has label {positive_label!r}")
    return is_positive


def pick_best(values: np.ndarray, candidates: np.ndarray, tie_break: str = 'smallest') -> int:
    """
    Index of the maximum value; near-equal maxima resolved by candidate size.

    Args:
        values: Scores to maximize
        candidates: Candidate (k or threshold) per score
        tie_break: 'smallest' or 'largest' candidate wins a tie

    Returns:
        Position of the selected candidate
    """
    if tie_break not in TIE_BREAKS:
        raise InputValidationError(f"tie_break must be one of {TIE_BREAKS}, got '{tie_break}'")
    values = np.asarray(values, dtype=float)
    tied = np.flatnonzero(np.isclose(values, np.nanmax(values), rtol=0.0, atol=1e-12))
    ordered = tied[np.argsort(np.asarray(candidates)[tied], kind='stable')]
    return int(ordered[0] if tie_break == 'smallest' else ordered[-1])


class ThresholdSelector:
    """
    Youden's J threshold selector.

    Candidate thresholds are 0 and 1, the midpoints between consecutive
    distinct predicted probabilities (or a fixed grid instead of the
    midpoints), and a terminal +inf anchor at which nothing is classified
    positive. A sample is positive when its probability is >= the
    threshold, so every midpoint yields the same partition as the next
    observed probability.
    """

    def __init__(self, grid: Optional[Sequence[float]] = None, tie_break: str = 'smallest'):
        if tie_break not in TIE_BREAKS:
            raise InputValidationError(f"tie_break must be one of {TIE_BREAKS}, got '{tie_break}'")
        if grid is not None:
            grid = np.asarray(grid, dtype=float)
            if grid.ndim != 1 or len(grid) == 0:
                raise InputValidationError("Threshold grid must be a non-empty 1D sequence")
            if np.any((grid < 0) | (grid > 1)):
                raise InputValidationError("Threshold grid values must lie in [0, 1]")
        self.grid = grid
        self.tie_break = tie_break

    def candidates(self, probabilities: np.ndarray) -> np.ndarray:
        if self.grid is not None:
            inner = self.grid
        else:
            distinct = np.unique(probabilities)
            inner = (distinct[:-1] + distinct[1:]) / 2.0
        return np.unique(np.concatenate([[0.0], inner, [1.0, np.inf]]))

    def curve(self, probabilities: Any, true_labels: Any, positive_label: Any = 1) -> pd.DataFrame:
        """
        Sensitivity/specificity at every candidate threshold.

        Returns:
            DataFrame ordered by threshold with columns threshold, sensitivity,
            specificity, false_positive_rate, youden_j
        """
        probabilities = np.asarray(probabilities, dtype=float)
        if probabilities.ndim != 1:
            raise InputValidationError("Probabilities must be 1D (positive-class column)")
        is_positive = _binary_truth(true_labels, positive_label)
        if len(probabilities) != len(is_positive):
            raise InputValidationError(
                f"Got {len(probabilities)} probabilities for {len(is_positive)} labels"
            )

        thresholds = self.candidates(probabilities)
        # predicted[i, j]: sample j called positive at threshold i
        predicted = probabilities[None, :] >= thresholds[:, None]

        tp = (predicted & is_positive).sum(axis=1)
        tn = (~predicted & ~is_positive).sum(axis=1)
        sensitivity = tp / is_positive.sum()
        specificity = tn / (~is_positive).sum()

        return pd.DataFrame({
            'threshold': thresholds,
            'sensitivity': sensitivity,
            'specificity': specificity,
            'false_positive_rate': 1.0 - specificity,
            'youden_j': sensitivity + specificity - 1.0,
        })

    def select(self, probabilities: Any, true_labels: Any, positive_label: Any = 1) -> Tuple[float, pd.DataFrame]:
        """
        Pick the finite threshold maximizing Youden's J.

        Returns:
            Tuple of (best_threshold, curve)
        """
        curve = self.curve(probabilities, true_labels, positive_label)
        finite = curve[np.isfinite(curve['threshold'])]
        best = pick_best(finite['youden_j'].to_numpy(), finite['threshold'].to_numpy(), self.tie_break)
        return float(finite['threshold'].iloc[best]), curve


def select_threshold(
        probabilities: Any,
        true_labels: Any,
        positive_label: Any = 1,
        grid: Optional[Sequence[float]] = None,
        tie_break: str = 'smallest'
) -> Tuple[float, pd.DataFrame]:
    """Select the Youden-optimal threshold. See ThresholdSelector."""
    return ThresholdSelector(grid=grid, tie_break=tie_break).select(probabilities, true_labels, positive_label)


def curve_auc(curve: pd.DataFrame) -> float:
    """Area under the ROC curve traced by a threshold curve."""
    points = curve.sort_values(['false_positive_rate', 'sensitivity'])
    return float(auc(points['false_positive_rate'], points['sensitivity']))
