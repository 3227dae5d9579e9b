"""
Pipeline Configuration

AnalysisConfig holds every knob of a run. On disk it is a sectioned YAML
file (data / split / search / classifier / threshold / analysis / output);
in memory the sections are flattened into one dataclass.
"""

from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import List, Dict, Optional, Any
import yaml

from models.errors import InputValidationError
from models.classifiers import SUPPORTED_METRICS
from models.evaluation import validate_k_grid
from models.thresholds import TIE_BREAKS

# YAML section -> {yaml key: dataclass field}
SECTIONS: Dict[str, Dict[str, str]] = {
    'data': {
        'path': 'data_path',
        'builtin': 'builtin_dataset',
        'label_column': 'label_column',
        'feature_columns': 'feature_columns',
        'label_map': 'label_map',
        'positive_label': 'positive_label',
    },
    'split': {
        'train_fraction': 'train_fraction',
        'seed': 'seed',
    },
    'search': {
        'k_grid': 'k_grid',
        'cv_folds': 'cv_folds',
        'cv_repeats': 'cv_repeats',
        'n_jobs': 'n_jobs',
        'tie_break': 'tie_break',
    },
    'classifier': {
        'metric': 'metric',
        'standardize': 'standardize',
    },
    'threshold': {
        'grid': 'threshold_grid',
        'strict_metrics': 'strict_metrics',
    },
    'analysis': {
        'statistical_test': 'statistical_test',
        'correction': 'correction',
        'alpha': 'alpha',
    },
    'output': {
        'output_dir': 'output_dir',
        'export_format': 'export_format',
        'create_plots': 'create_plots',
    },
}


@dataclass
class AnalysisConfig:
    """Configuration for the k-NN analysis pipeline."""

    # Data
    data_path: Optional[str] = None
    builtin_dataset: Optional[str] = 'breast_cancer'
    label_column: str = 'label'
    feature_columns: Optional[List[str]] = None
    label_map: Optional[Dict[Any, Any]] = None
    positive_label: Any = 1

    # Split
    train_fraction: float = 0.75
    seed: int = 42

    # k search
    k_grid: List[int] = field(default_factory=lambda: list(range(1, 22, 2)))
    cv_folds: int = 10
    cv_repeats: int = 10
    n_jobs: int = 1
    tie_break: str = 'smallest'

    # Classifier
    metric: str = 'euclidean'
    standardize: bool = False

    # Threshold / evaluation
    threshold_grid: Optional[List[float]] = None
    strict_metrics: bool = False

    # Descriptive statistics
    statistical_test: str = 'mannwhitney'
    correction: Optional[str] = 'fdr_bh'
    alpha: float = 0.05

    # Output
    output_dir: str = 'results'
    export_format: str = 'excel'  # or 'csv'
    create_plots: bool = True

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'AnalysisConfig':
        """
        Build a config from the sectioned mapping found in config.yaml.

        Missing sections and keys keep their defaults; unknown ones raise.
        """
        config = config or {}
        unknown_sections = set(config) - set(SECTIONS)
        if unknown_sections:
            raise InputValidationError(f"Unknown config sections: {sorted(unknown_sections)}")

        values = {}
        for section, keys in SECTIONS.items():
            section_values = config.get(section) or {}
            unknown_keys = set(section_values) - set(keys)
            if unknown_keys:
                raise InputValidationError(f"Unknown keys in '{section}': {sorted(unknown_keys)}")
            for key, value in section_values.items():
                values[keys[key]] = value

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        flat = asdict(self)
        return {
            section: {key: flat[name] for key, name in keys.items()}
            for section, keys in SECTIONS.items()
        }

    @classmethod
    def from_yaml(cls, filepath: str) -> 'AnalysisConfig':
        """Load configuration from YAML file."""
        with open(filepath, 'r', encoding='utf-8') as f:
            return cls.from_dict(yaml.safe_load(f))

    def to_yaml(self, filepath: str) -> None:
        """Save configuration to YAML file."""
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

    def validate(self) -> 'AnalysisConfig':
        """
        Validate configuration parameters.

        Raises:
            InputValidationError: on the first invalid value
        """
        if (self.data_path is None) == (self.builtin_dataset is None):
            raise InputValidationError("Set exactly one of data.path and data.builtin")
        if not 0 < self.train_fraction < 1:
            raise InputValidationError(f"train_fraction must be in (0, 1), got {self.train_fraction}")
        if not isinstance(self.seed, int) or isinstance(self.seed, bool):
            raise InputValidationError(f"seed must be an integer, got {self.seed!r}")

        self.k_grid = validate_k_grid(self.k_grid)
        if self.cv_folds < 2:
            raise InputValidationError(f"cv_folds must be at least 2, got {self.cv_folds}")
        if self.cv_repeats < 1:
            raise InputValidationError(f"cv_repeats must be at least 1, got {self.cv_repeats}")
        if self.n_jobs == 0:
            raise InputValidationError("n_jobs must be a positive count or negative (joblib style), not 0")
        if self.tie_break not in TIE_BREAKS:
            raise InputValidationError(f"tie_break must be one of {TIE_BREAKS}, got '{self.tie_break}'")
        if self.metric not in SUPPORTED_METRICS:
            raise InputValidationError(
                f"metric must be one of {sorted(SUPPORTED_METRICS)}, got '{self.metric}'"
            )

        if self.threshold_grid is not None:
            if not self.threshold_grid or any(not 0 <= t <= 1 for t in self.threshold_grid):
                raise InputValidationError("threshold grid values must lie in [0, 1]")

        if not 0 < self.alpha < 1:
            raise InputValidationError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.export_format not in ('excel', 'csv'):
            raise InputValidationError(f"export_format must be 'excel' or 'csv', got '{self.export_format}'")
        return self

    def update(self, **overrides) -> 'AnalysisConfig':
        """Apply non-None overrides (e.g. from the command line) in place."""
        names = {f.name for f in fields(self)}
        for name, value in overrides.items():
            if name not in names:
                raise InputValidationError(f"Unknown config field '{name}'")
            if value is not None:
                setattr(self, name, value)
        return self


def load_config(config_path: Optional[str] = None) -> AnalysisConfig:
    """
    Load config.yaml, searching the working directory and then the project root.

    With no path and no file found, the built-in defaults are used.
    """
    candidates = [Path(config_path)] if config_path else [
        Path('config.yaml'),
        Path(__file__).resolve().parent.parent / 'config.yaml',
    ]
    for p in candidates:
        if p.exists():
            print(f"    Found config at: {p.absolute()}")
            return AnalysisConfig.from_yaml(str(p))

    if config_path:
        raise FileNotFoundError(f"Config not found: {config_path}")
    print("    No config.yaml found, using defaults")
    return AnalysisConfig()
