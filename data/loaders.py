"""
Data Loaders

This module reads labeled tabular data (CSV or Excel) into a LabeledDataset.
"""

from typing import Optional, Dict, Any, List
from pathlib import Path
import warnings
import numpy as np
import pandas as pd
from sklearn import datasets as sk_datasets

from models.errors import InputValidationError
from .dataset import LabeledDataset


def _load_breast_cancer():
    # sklearn encodes malignant as 0; flip so the positive class 1 is malignant
    bunch = sk_datasets.load_breast_cancer()
    bunch.target = 1 - bunch.target
    bunch.target_names = bunch.target_names[::-1]
    return bunch


# Built-in demo datasets (loaders returning an sklearn Bunch)
BUILTIN_DATASETS = {
    'breast_cancer': _load_breast_cancer,
}


class TabularDatasetLoader:
    """
    Loader for labeled tables stored as CSV or Excel.

    Expected layout: one row per sample, one column per feature, plus a
    label column. Rows with missing or infinite feature values are dropped.

    Attributes:
        label_column (str): Name of the label column
        feature_columns (Optional[List[str]]): Feature columns (None = all numeric)
        label_map (Optional[Dict]): Optional relabeling, e.g. {'M': 1, 'B': 0}
        sheet_name: Excel sheet to read
    """

    SUPPORTED_SUFFIXES = ('.csv', '.txt', '.xlsx')

    def __init__(
        self,
        label_column: str = 'label',
        feature_columns: Optional[List[str]] = None,
        label_map: Optional[Dict[Any, Any]] = None,
        sheet_name: Any = 0
    ):
        """
        Initialize tabular loader.

        Args:
            label_column: Name of label column
            feature_columns: Feature columns (None = every other numeric column)
            label_map: Mapping applied to raw labels before building the dataset
            sheet_name: Sheet name or index for Excel files
        """
        self.label_column = label_column
        self.feature_columns = feature_columns
        self.label_map = label_map
        self.sheet_name = sheet_name

    def read_table(self, filepath: str) -> pd.DataFrame:
        """Read the raw table without any cleaning."""
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"File not found: {filepath}")

        suffix = filepath.suffix.lower()
        if suffix in ('.csv', '.txt'):
            return pd.read_csv(filepath)
        if suffix == '.xlsx':
            return pd.read_excel(filepath, sheet_name=self.sheet_name, engine='openpyxl')
        raise InputValidationError(
            f"Unsupported file type '{suffix}' for {filepath.name}, "
            f"expected one of {self.SUPPORTED_SUFFIXES}"
        )

    def clean(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply label mapping and drop unusable rows.

        Args:
            df: Raw table

        Returns:
            Cleaned copy of the table
        """
        if self.label_column not in df.columns:
            raise InputValidationError(
                f"Label column '{self.label_column}' not found. Columns: {df.columns.tolist()}"
            )

        df = df.copy()
        if self.label_map:
            unmapped = set(df[self.label_column].dropna().unique()) - set(self.label_map)
            if unmapped:
                raise InputValidationError(f"Labels missing from label_map: {sorted(map(str, unmapped))}")
            df[self.label_column] = df[self.label_column].map(self.label_map)

        feature_columns = self.feature_columns
        if feature_columns is None:
            feature_columns = [
                col for col in df.select_dtypes(include=[np.number]).columns
                if col != self.label_column
            ]

        subset = feature_columns + [self.label_column]
        missing = [col for col in subset if col not in df.columns]
        if missing:
            raise InputValidationError(f"Columns not found: {missing}")

        df[feature_columns] = df[feature_columns].replace([np.inf, -np.inf], np.nan)
        n_before = len(df)
        df = df.dropna(subset=subset).reset_index(drop=True)
        n_dropped = n_before - len(df)
        if n_dropped:
            warnings.warn(f"Dropped {n_dropped} of {n_before} rows with missing values")

        return df[subset]

    def load(self, filepath: str) -> LabeledDataset:
        """Load a labeled dataset from CSV or Excel."""
        df = self.clean(self.read_table(filepath))
        dataset = LabeledDataset.from_frame(
            df,
            label_column=self.label_column,
            feature_columns=[c for c in df.columns if c != self.label_column],
            name=Path(filepath).stem
        )
        print(f"Loaded {dataset.n_samples} samples, {dataset.n_features} features "
              f"from {Path(filepath).name}")
        print(f"  Class distribution: {dataset.class_counts()}")
        return dataset


def load_builtin(name: str) -> LabeledDataset:
    """
    Load one of the bundled scikit-learn demo datasets.

    Args:
        name: Key of BUILTIN_DATASETS (e.g. 'breast_cancer')

    Returns:
        LabeledDataset
    """
    if name not in BUILTIN_DATASETS:
        raise InputValidationError(
            f"Unknown built-in dataset '{name}', expected one of {sorted(BUILTIN_DATASETS)}"
        )
    bunch = BUILTIN_DATASETS[name]()
    return LabeledDataset(bunch.data, bunch.target, feature_names=list(bunch.feature_names), name=name)
