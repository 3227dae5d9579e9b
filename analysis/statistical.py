"""
Statistical Analysis

Exploratory statistics for a two-class labeled dataset: per-feature
summaries, class balance, and a per-feature two-group test with effect
size and multiple comparison correction.

Default test is Mann-Whitney U (rank-biserial effect size); Welch's
t-test (Cohen's d) is available through configuration.
"""

from dataclasses import dataclass
from typing import List, Dict, Optional, Any
import warnings
import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from data.dataset import LabeledDataset

# Quantiles reported by describe()
QUANTILES = {'q25': 0.25, 'median': 0.5, 'q75': 0.75}


@dataclass(frozen=True)
class GroupComparison:
    """Outcome of one two-group test on one feature."""
    statistic: float
    p_value: float
    effect_size: float


class GroupTest:
    """
    Two-group test on one feature.

    Subclasses implement _compare(); compare() handles groups too small to
    test and features that are constant across both groups.
    """

    name = "base"
    parametric = True
    effect_size_name = ""
    min_group_size = 1

    def compare(self, group_a: np.ndarray, group_b: np.ndarray) -> GroupComparison:
        if min(len(group_a), len(group_b)) < self.min_group_size:
            return GroupComparison(np.nan, np.nan, np.nan)
        if np.ptp(np.concatenate([group_a, group_b])) == 0:
            # Nothing to separate
            return GroupComparison(np.nan, 1.0, 0.0)
        return self._compare(group_a, group_b)

    def _compare(self, group_a: np.ndarray, group_b: np.ndarray) -> GroupComparison:
        raise NotImplementedError("Subclasses must implement _compare()")


class MannWhitneyU(GroupTest):
    """Mann-Whitney U with rank-biserial correlation (positive when group a ranks higher)."""

    name = "Mann-Whitney U"
    parametric = False
    effect_size_name = "rank_biserial"

    def __init__(self, alternative: str = 'two-sided'):
        self.alternative = alternative

    def _compare(self, group_a, group_b):
        u_stat, p_value = stats.mannwhitneyu(group_a, group_b, alternative=self.alternative)
        effect = 2.0 * u_stat / (len(group_a) * len(group_b)) - 1.0
        return GroupComparison(float(u_stat), float(p_value), float(effect))


class WelchTTest(GroupTest):
    """Welch's unequal-variance t-test with Cohen's d on the pooled standard deviation."""

    name = "Welch t-test"
    parametric = True
    effect_size_name = "cohen_d"
    min_group_size = 2

    def _compare(self, group_a, group_b):
        t_stat, p_value = stats.ttest_ind(group_a, group_b, equal_var=False)
        n_a, n_b = len(group_a), len(group_b)
        pooled_var = ((n_a - 1) * np.var(group_a, ddof=1) + (n_b - 1) * np.var(group_b, ddof=1)) / (n_a + n_b - 2)
        effect = 0.0 if pooled_var == 0 else (np.mean(group_a) - np.mean(group_b)) / np.sqrt(pooled_var)
        return GroupComparison(float(t_stat), float(p_value), float(effect))


# Accepted names for the configured test
GROUP_TESTS = {
    'mannwhitney': MannWhitneyU,
    'mann-whitney': MannWhitneyU,
    'mannwhitneyu': MannWhitneyU,
    'ttest': WelchTTest,
    't-test': WelchTTest,
    'welch': WelchTTest,
}


class StatisticalAnalyzer:
    """
    Describe a labeled dataset and compare every feature between its two classes.

    Attributes:
        group_test (GroupTest): Test applied per feature
        correction_method (Optional[str]): statsmodels multipletests method, or None
        alpha (float): Significance threshold on the corrected p-values
    """

    def __init__(
        self,
        test: str = 'mannwhitney',
        correction_method: Optional[str] = 'fdr_bh',
        alpha: float = 0.05
    ):
        """
        Args:
            test: Key of GROUP_TESTS ('mannwhitney' or 'ttest')
            correction_method: 'fdr_bh', 'bonferroni', 'holm', ... or None
            alpha: Significance threshold
        """
        test_class = GROUP_TESTS.get(test.lower())
        if test_class is None:
            warnings.warn(f"Unknown test '{test}', using Mann-Whitney U")
            test_class = MannWhitneyU
        self.group_test = test_class()
        self.correction_method = correction_method
        self.alpha = alpha

    def describe(self, dataset: LabeledDataset) -> pd.DataFrame:
        """
        Summary statistics per feature, overall and within each class.

        Returns:
            Long DataFrame with columns feature_name, group, count, mean, std,
            min, q25, median, q75, max. Group 'all' is the whole dataset.
        """
        df = pd.DataFrame(dataset.X, columns=dataset.feature_names)
        blocks = [('all', df)]
        blocks += [(str(label), df[dataset.y == label]) for label in dataset.classes]

        frames = []
        for group, block in blocks:
            summary = block.agg(['count', 'mean', 'std', 'min', 'max']).T
            for column, q in QUANTILES.items():
                summary[column] = block.quantile(q)
            summary['count'] = summary['count'].astype(int)
            summary.insert(0, 'group', group)
            frames.append(summary)

        table = pd.concat(frames).rename_axis('feature_name').reset_index()
        return table[['feature_name', 'group', 'count', 'mean', 'std', 'min', 'q25', 'median', 'q75', 'max']]

    def class_balance(self, dataset: LabeledDataset) -> pd.DataFrame:
        """Count and proportion of each class."""
        counts = pd.Series(dataset.class_counts(), name='count')
        balance = counts.rename_axis('label').reset_index()
        balance['proportion'] = balance['count'] / dataset.n_samples
        return balance

    def compare_groups(
        self,
        features_df: pd.DataFrame,
        labels: Any,
        feature_names: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """
        Test every feature for a difference between the two classes.

        Group a is the smaller label, group b the larger one. NaN values are
        dropped per feature before testing.

        Args:
            features_df: One row per sample, one column per feature
            labels: Class label per row (exactly two distinct values)
            feature_names: Features to test (None = all numeric columns)

        Returns:
            DataFrame, one row per feature: feature_name, label_a, n_a,
            mean_a, std_a, median_a, the same for b, statistic, p_value,
            effect_size, p_value_corrected, significant, test_used
        """
        labels = np.asarray(labels)
        if len(labels) != len(features_df):
            raise ValueError(f"Got {len(labels)} labels for {len(features_df)} rows")

        groups = np.unique(labels)
        if len(groups) != 2:
            raise ValueError(f"Need exactly 2 groups for comparison, got {len(groups)}")
        label_a, label_b = groups.tolist()

        if feature_names is None:
            feature_names = features_df.select_dtypes(include=[np.number]).columns.tolist()
        missing = [name for name in feature_names if name not in features_df.columns]
        if missing:
            warnings.warn(f"Features not in DataFrame, skipping: {missing}")
            feature_names = [name for name in feature_names if name not in missing]

        in_a, in_b = labels == label_a, labels == label_b
        rows = []
        for name in feature_names:
            values = features_df[name].to_numpy(dtype=float)
            group_a = values[in_a & ~np.isnan(values)]
            group_b = values[in_b & ~np.isnan(values)]
            result = self.group_test.compare(group_a, group_b)

            row: Dict[str, Any] = {'feature_name': name}
            for suffix, label, group in (('a', label_a, group_a), ('b', label_b, group_b)):
                row[f'label_{suffix}'] = label
                row[f'n_{suffix}'] = len(group)
                row[f'mean_{suffix}'] = group.mean() if len(group) else np.nan
                row[f'std_{suffix}'] = group.std(ddof=1) if len(group) > 1 else np.nan
                row[f'median_{suffix}'] = np.median(group) if len(group) else np.nan
            row.update(statistic=result.statistic, p_value=result.p_value, effect_size=result.effect_size)
            rows.append(row)

        results = pd.DataFrame(rows)
        if len(results) > 0:
            results['p_value_corrected'] = self.correct_multiple_comparisons(results['p_value'].to_numpy())
            results['significant'] = results['p_value_corrected'] < self.alpha
            results['test_used'] = self.group_test.name
        return results

    def correct_multiple_comparisons(self, p_values: np.ndarray, method: Optional[str] = None) -> np.ndarray:
        """
        Adjust p-values with statsmodels multipletests.

        NaN p-values are left out of the family and stay NaN.
        """
        method = method or self.correction_method
        adjusted = np.array(p_values, dtype=float)
        if method is None:
            return adjusted

        testable = ~np.isnan(adjusted)
        if testable.any():
            adjusted[testable] = multipletests(adjusted[testable], method=method)[1]
        return adjusted

    def significant_features(self, results: pd.DataFrame, use_corrected: bool = True) -> List[str]:
        """Names of the features below alpha, most significant first."""
        column = 'p_value_corrected' if use_corrected else 'p_value'
        hits = results[results[column] < self.alpha].sort_values(column)
        return hits['feature_name'].tolist()

    def generate_report(self, results: pd.DataFrame, output_path: Optional[str] = None) -> str:
        """Plain-text summary of a compare_groups() table, optionally written to disk."""
        significant = results[results['significant']] if len(results) else results
        header = [
            "=" * 70,
            "STATISTICAL ANALYSIS REPORT",
            "=" * 70,
            f"Features tested: {len(results)}",
            f"Test: {self.group_test.name} (effect size: {self.group_test.effect_size_name})",
            f"Correction: {self.correction_method}, alpha = {self.alpha}",
            f"Significant features: {len(significant)}",
            "",
        ]

        body = []
        if len(significant) > 0:
            columns = ['feature_name', 'p_value_corrected', 'effect_size', 'mean_a', 'mean_b']
            table = significant.sort_values('p_value_corrected')[columns]
            body.append(f"Group a = label {results['label_a'].iloc[0]}, group b = label {results['label_b'].iloc[0]}")
            body.append(table.to_string(index=False, float_format=lambda v: f"{v:.4g}"))

        report = "\n".join(header + body + ["=" * 70])

        if output_path:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(report)

        return report
