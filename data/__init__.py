"""
Data Layer

Handles the labeled dataset structure, loading tables, and exporting report tables.
"""

from .dataset import Sample, LabeledDataset
from .loaders import TabularDatasetLoader, load_builtin
from .exporters import (
    ExcelExporter,
    CSVExporter,
    ReportExporter
)

__all__ = [
    # Core data structures
    'Sample',
    'LabeledDataset',

    # Loaders
    'TabularDatasetLoader',
    'load_builtin',

    # Exporters
    'ExcelExporter',
    'CSVExporter',
    'ReportExporter',
]
