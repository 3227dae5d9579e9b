import os
import tempfile
import unittest
from pathlib import Path
import numpy as np
import pandas as pd
import yaml
from sklearn.datasets import make_classification

from data.dataset import LabeledDataset
from data.loaders import TabularDatasetLoader, load_builtin
from data.exporters import ExcelExporter, ReportExporter
from models.errors import InputValidationError
from models.evaluation import ConfusionMatrix
from models.thresholds import ThresholdSelector
from pipeline import AnalysisConfig, AnalysisPipeline, load_config
from pipeline.main import main
from visualization.interactive import InteractivePlotter


def write_table(directory, n_samples=80, seed=0):
    X, y = make_classification(
        n_samples=n_samples, n_features=3, n_informative=2, n_redundant=0,
        class_sep=2.0, random_state=seed
    )
    df = pd.DataFrame(X, columns=['alpha', 'beta', 'gamma'])
    df['diagnosis'] = np.where(y == 1, 'M', 'B')
    path = Path(directory) / 'table.csv'
    df.to_csv(path, index=False)
    return path


def small_config(data_path, output_dir, **overrides):
    config = AnalysisConfig(
        data_path=str(data_path),
        builtin_dataset=None,
        label_column='diagnosis',
        label_map={'M': 1, 'B': 0},
        k_grid=[1, 3, 5],
        cv_folds=3,
        cv_repeats=2,
        output_dir=str(output_dir),
        export_format='csv',
        create_plots=False,
    )
    return config.update(**overrides)


class TestConfig(unittest.TestCase):

    def test_defaults_are_valid(self):
        config = AnalysisConfig().validate()
        self.assertEqual(config.train_fraction, 0.75)
        self.assertEqual(config.cv_folds, 10)
        self.assertEqual(config.cv_repeats, 10)
        self.assertEqual(config.k_grid, [1, 3, 5, 7, 9, 11, 13, 15, 17, 19, 21])
        self.assertEqual(config.seed, 42)

    def test_yaml_round_trip(self):
        config = AnalysisConfig(cv_folds=5, k_grid=[1, 3], threshold_grid=[0.25, 0.5], tie_break='largest')
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'config.yaml')
            config.to_yaml(path)
            with open(path) as f:
                raw = yaml.safe_load(f)
            restored = AnalysisConfig.from_yaml(path)

        self.assertEqual(raw['search']['cv_folds'], 5)
        self.assertEqual(raw['threshold']['grid'], [0.25, 0.5])
        self.assertEqual(restored, config)

    def test_from_dict_sections(self):
        config = AnalysisConfig.from_dict({
            'data': {'builtin': None, 'path': 'x.csv'},
            'split': {'seed': 7},
            'classifier': {'standardize': True},
        })
        self.assertEqual(config.data_path, 'x.csv')
        self.assertEqual(config.seed, 7)
        self.assertTrue(config.standardize)
        self.assertEqual(config.cv_folds, 10)

    def test_unknown_keys_rejected(self):
        with self.assertRaises(InputValidationError):
            AnalysisConfig.from_dict({'modeling': {}})
        with self.assertRaises(InputValidationError):
            AnalysisConfig.from_dict({'search': {'folds': 5}})

    def test_validation(self):
        bad = [
            {'train_fraction': 1.0},
            {'k_grid': [2, 4]},
            {'cv_folds': 1},
            {'cv_repeats': 0},
            {'tie_break': 'random'},
            {'metric': 'cosine'},
            {'export_format': 'pdf'},
            {'data_path': 'x.csv'},
            {'threshold_grid': [0.5, 1.5]},
        ]
        for overrides in bad:
            with self.assertRaises(InputValidationError, msg=str(overrides)):
                AnalysisConfig(**overrides).validate()

    def test_repository_config_loads(self):
        root_config = Path(__file__).resolve().parent.parent / 'config.yaml'
        config = load_config(str(root_config)).validate()
        self.assertEqual(config.builtin_dataset, 'breast_cancer')
        self.assertEqual(config.k_grid[-1], 21)

    def test_missing_config_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config('/nonexistent/config.yaml')


class TestLoadersAndExporters(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_csv_loader_maps_labels_and_drops_bad_rows(self):
        df = pd.DataFrame({
            'a': [1.0, 2.0, np.nan, 4.0, np.inf],
            'b': [0.5, 0.1, 0.2, 0.3, 0.4],
            'label': ['M', 'B', 'M', 'B', 'M'],
        })
        path = self.tmp_dir / 'rows.csv'
        df.to_csv(path, index=False)

        loader = TabularDatasetLoader(label_column='label', label_map={'M': 1, 'B': 0})
        with self.assertWarns(UserWarning):
            dataset = loader.load(str(path))

        self.assertEqual(dataset.n_samples, 3)
        self.assertEqual(dataset.feature_names, ['a', 'b'])
        self.assertEqual(dataset.y.tolist(), [1, 0, 0])
        self.assertEqual(dataset.name, 'rows')

    def test_loader_errors(self):
        path = self.tmp_dir / 'rows.csv'
        pd.DataFrame({'a': [1.0, 2.0], 'label': ['x', 'y']}).to_csv(path, index=False)

        with self.assertRaises(InputValidationError):
            TabularDatasetLoader(label_column='label', label_map={'x': 0}).load(str(path))
        with self.assertRaises(InputValidationError):
            TabularDatasetLoader(label_column='outcome').load(str(path))
        with self.assertRaises(FileNotFoundError):
            TabularDatasetLoader().load(str(self.tmp_dir / 'missing.csv'))

        odd = self.tmp_dir / 'rows.json'
        odd.write_text('{}')
        with self.assertRaises(InputValidationError):
            TabularDatasetLoader().load(str(odd))

    def test_excel_loader(self):
        path = self.tmp_dir / 'rows.xlsx'
        pd.DataFrame({'a': [1.0, 2.0, 3.0], 'label': [0, 1, 0]}).to_excel(path, index=False)
        dataset = TabularDatasetLoader().load(str(path))
        self.assertEqual(dataset.class_counts(), {0: 2, 1: 1})

    def test_builtin_dataset(self):
        dataset = load_builtin('breast_cancer')
        self.assertEqual(dataset.n_samples, 569)
        self.assertEqual(dataset.n_features, 30)
        # 212 malignant tumors form the positive class
        self.assertEqual(dataset.class_counts(), {0: 357, 1: 212})
        with self.assertRaises(InputValidationError):
            load_builtin('iris_plus')

    def test_excel_exporter_sheets(self):
        path = self.tmp_dir / 'report.xlsx'
        exporter = ExcelExporter(str(path))
        with self.assertWarns(UserWarning):
            exporter.add_table('A' * 40, pd.DataFrame({'x': [1, 2]}))
        exporter.add_table('Other', pd.DataFrame({'y': [3.0]}))
        exporter.write()

        sheets = pd.read_excel(path, sheet_name=None, engine='openpyxl')
        self.assertEqual(set(sheets), {'A' * 31, 'Other'})
        self.assertEqual(sheets['Other']['y'].tolist(), [3.0])

    def test_report_exporter_csv(self):
        out = self.tmp_dir / 'csv_report'
        ReportExporter(str(out), format='csv').export(
            {'Scores': pd.DataFrame({'k': [1, 3]})}, metadata={'seed': 42}
        )
        self.assertTrue((out / 'scores.csv').exists())
        metadata = pd.read_csv(out / 'metadata.csv')
        self.assertEqual(metadata['key'].tolist(), ['seed'])

        with self.assertRaises(ValueError):
            ReportExporter(str(out), format='pdf')


class TestPlotter(unittest.TestCase):

    def test_model_plots_written(self):
        with tempfile.TemporaryDirectory() as tmp:
            plotter = InteractivePlotter(tmp)
            curve = ThresholdSelector().curve(np.array([0.1, 0.6, 0.4, 0.9]), np.array([0, 0, 1, 1]))
            summary = pd.DataFrame({'k': [1, 3], 'mean_accuracy': [0.8, 0.9], 'std_accuracy': [0.05, 0.04],
                                    'mean_kappa': [0.6, 0.8]})

            paths = [
                plotter.plot_cv_scores(summary, best_k=3),
                plotter.plot_threshold_curve(curve, best_threshold=0.5),
                plotter.plot_roc_curve(curve, auc_value=0.75),
                plotter.plot_confusion_matrix(ConfusionMatrix(tp=5, fp=1, tn=4, fn=0)),
            ]
            for path in paths:
                self.assertTrue(Path(path).exists(), path)

    def test_pca_needs_two_features(self):
        with tempfile.TemporaryDirectory() as tmp:
            plotter = InteractivePlotter(tmp)
            with self.assertWarns(UserWarning):
                result = plotter.plot_pca_2d(pd.DataFrame({'x': [1.0, 2.0, 3.0]}), [0, 1, 0], 'tiny')
        self.assertIsNone(result)


class TestAnalysisPipeline(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self.tmp.name)
        self.data_path = write_table(self.tmp_dir)

    def tearDown(self):
        self.tmp.cleanup()

    def test_run_exports_every_table(self):
        out = self.tmp_dir / 'results'
        results = AnalysisPipeline(small_config(self.data_path, out)).run()

        self.assertEqual(len(results['train']) + len(results['test']), 80)
        experiment = results['experiment']
        self.assertIn(experiment.best_k, [1, 3, 5])
        self.assertTrue(0.0 <= experiment.best_threshold <= 1.0)

        report_dir = Path(results['export_path'])
        for name in ('class_balance', 'descriptive_stats', 'group_comparison', 'cv_scores',
                     'cv_summary', 'threshold_curve', 'test_metrics', 'confusion_matrix',
                     'test_predictions', 'metadata'):
            self.assertTrue((report_dir / f'{name}.csv').exists(), name)
        self.assertTrue((out / 'statistical_report.txt').exists())

        predictions = pd.read_csv(report_dir / 'test_predictions.csv')
        self.assertEqual(len(predictions), len(results['test']))

    def test_run_is_reproducible(self):
        first = AnalysisPipeline(small_config(self.data_path, self.tmp_dir / 'a')).run()
        second = AnalysisPipeline(small_config(self.data_path, self.tmp_dir / 'b')).run()
        self.assertEqual(first['experiment'].best_k, second['experiment'].best_k)
        pd.testing.assert_frame_equal(first['experiment'].cv_scores, second['experiment'].cv_scores)

    def test_run_with_plots_and_excel(self):
        out = self.tmp_dir / 'excel'
        config = small_config(self.data_path, out, export_format='excel', create_plots=True)
        results = AnalysisPipeline(config).run()

        self.assertTrue(Path(results['export_path']).exists())
        self.assertTrue((out / 'plots' / 'model' / 'threshold_curve.html').exists())
        self.assertTrue((out / 'plots' / 'violins' / 'alpha.html').exists())

    def test_cli_exit_codes(self):
        config = small_config(self.data_path, self.tmp_dir / 'cli')
        config_path = self.tmp_dir / 'config.yaml'
        config.to_yaml(str(config_path))
        self.assertEqual(main(['--config', str(config_path), '--no-plots', '--seed', '3']), 0)

        config.train_fraction = 1.5
        config.to_yaml(str(config_path))
        self.assertEqual(main(['--config', str(config_path)]), 1)
        self.assertEqual(main(['--config', str(self.tmp_dir / 'missing.yaml')]), 1)


if __name__ == '__main__':
    unittest.main()
