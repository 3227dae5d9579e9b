"""
Analysis Pipeline

Orchestrates one complete run:
1. Load the labeled dataset
2. Descriptive statistics and per-feature class comparison
3. Exploratory plots
4. Stratified train/test split
5. k search, refit, threshold selection and test evaluation
6. Model plots
7. Export of every table
"""

from pathlib import Path
from typing import Dict, Any
import numpy as np
import pandas as pd

from data.dataset import LabeledDataset
from data.loaders import TabularDatasetLoader, load_builtin
from data.exporters import ReportExporter
from analysis.statistical import StatisticalAnalyzer
from models.splitting import stratified_split
from models.experiment import ExperimentManager, ExperimentResult
from visualization.interactive import InteractivePlotter
from .config import AnalysisConfig


class AnalysisPipeline:
    """Main analysis pipeline driven by an AnalysisConfig."""

    def __init__(self, config: AnalysisConfig):
        self.config = config.validate()
        self.output_dir = Path(config.output_dir)
        self.analyzer = StatisticalAnalyzer(
            test=config.statistical_test,
            correction_method=config.correction,
            alpha=config.alpha
        )
        self.plotter = InteractivePlotter(self.output_dir / "plots") if config.create_plots else None

    def load_data(self) -> LabeledDataset:
        cfg = self.config
        if cfg.builtin_dataset is not None:
            dataset = load_builtin(cfg.builtin_dataset)
            print(f"    Loaded built-in dataset '{cfg.builtin_dataset}': {dataset!r}")
            return dataset

        loader = TabularDatasetLoader(
            label_column=cfg.label_column,
            feature_columns=cfg.feature_columns,
            label_map=cfg.label_map
        )
        return loader.load(cfg.data_path)

    def describe_data(self, dataset: LabeledDataset) -> Dict[str, pd.DataFrame]:
        """Descriptive tables and the two-class feature comparison."""
        features_df = pd.DataFrame(dataset.X, columns=dataset.feature_names)
        comparison = self.analyzer.compare_groups(features_df, dataset.y)
        n_significant = int(comparison['significant'].sum()) if len(comparison) else 0
        print(f"    Significant features: {n_significant} of {dataset.n_features}")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.analyzer.generate_report(comparison, output_path=str(self.output_dir / "statistical_report.txt"))

        return {
            'class_balance': self.analyzer.class_balance(dataset),
            'descriptive': self.analyzer.describe(dataset),
            'comparison': comparison,
        }

    def plot_exploration(self, dataset: LabeledDataset, comparison: pd.DataFrame) -> None:
        features_df = pd.DataFrame(dataset.X, columns=dataset.feature_names)
        self.plotter.plot_feature_violins(features_df, dataset.y, dataset.name)
        self.plotter.plot_statistical_ranking(comparison, alpha=self.config.alpha)
        self.plotter.plot_correlation_matrix(features_df, dataset.name)
        self.plotter.plot_pca_2d(features_df, dataset.y, dataset.name)

    def plot_model(self, result: ExperimentResult) -> None:
        self.plotter.plot_cv_scores(result.cv_summary, best_k=result.best_k)
        self.plotter.plot_threshold_curve(result.threshold_curve, best_threshold=result.best_threshold)
        self.plotter.plot_roc_curve(result.threshold_curve, auc_value=result.auc)
        self.plotter.plot_confusion_matrix(
            result.metrics_tuned['confusion_matrix'],
            negative_label=result.negative_label,
            positive_label=result.positive_label,
            title=f"Confusion Matrix (k={result.best_k}, threshold={result.best_threshold:.3f})"
        )

    def build_tables(
        self,
        description: Dict[str, pd.DataFrame],
        test: LabeledDataset,
        result: ExperimentResult
    ) -> Dict[str, pd.DataFrame]:
        predicted = np.where(result.test_probabilities >= result.best_threshold,
                             result.positive_label, result.negative_label)
        predictions = pd.DataFrame({
            'true_label': test.y,
            'probability_positive': result.test_probabilities,
            'predicted_label': predicted,
        })
        confusion = result.metrics_tuned['confusion_matrix'].to_frame(
            result.negative_label, result.positive_label
        )
        return {
            'Class_Balance': description['class_balance'],
            'Descriptive_Stats': description['descriptive'],
            'Group_Comparison': description['comparison'],
            'CV_Scores': result.cv_scores,
            'CV_Summary': result.cv_summary,
            'Threshold_Curve': result.threshold_curve,
            'Test_Metrics': result.metrics_table(),
            'Confusion_Matrix': confusion,
            'Test_Predictions': predictions,
        }

    def run(self) -> Dict[str, Any]:
        """
        Run complete analysis pipeline.

        Returns:
            Dictionary with dataset, train, test, description tables,
            experiment result, report tables and export path
        """
        cfg = self.config

        print("\n[PHASE 1] Data Loading")
        dataset = self.load_data()

        print("\n[PHASE 2] Descriptive Statistics")
        description = self.describe_data(dataset)
        if self.plotter is not None:
            self.plot_exploration(dataset, description['comparison'])

        print("\n[PHASE 3] Train/Test Split")
        train, test = stratified_split(dataset, cfg.train_fraction, cfg.seed)
        print(f"    Train: {train.class_counts()} | Test: {test.class_counts()}")

        print("\n[PHASE 4] Model Selection & Evaluation")
        result = ExperimentManager(cfg).run(train, test)
        if self.plotter is not None:
            self.plot_model(result)

        print("\n[PHASE 5] Export")
        tables = self.build_tables(description, test, result)
        if cfg.export_format == 'excel':
            target = self.output_dir / f"REPORT_{dataset.name}.xlsx"
        else:
            target = self.output_dir / f"report_{dataset.name}"
        metadata = {
            'dataset': dataset.name,
            'n_samples': dataset.n_samples,
            'n_features': dataset.n_features,
            'best_k': result.best_k,
            'best_threshold': result.best_threshold,
            'auc': result.auc,
            **cfg.to_dict(),
        }
        export_path = ReportExporter(str(target), format=cfg.export_format).export(
            tables, metadata=metadata, index_tables=('Confusion_Matrix',)
        )

        print(f"\n✅ Completed: best k = {result.best_k}, "
              f"threshold = {result.best_threshold:.3f}, "
              f"test accuracy = {result.metrics_tuned['accuracy']:.3f}")

        return {
            'dataset': dataset,
            'train': train,
            'test': test,
            'description': description,
            'experiment': result,
            'tables': tables,
            'export_path': export_path,
        }
