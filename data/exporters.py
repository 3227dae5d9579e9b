"""
Report Exporters

Writes the named report tables of a run (class balance, descriptive
statistics, CV scores, threshold curve, test metrics, ...) either as the
sheets of one Excel workbook or as one CSV file per table.
"""

from typing import Dict, Optional, Any, Iterable, Tuple
from datetime import datetime
from pathlib import Path
import warnings
import pandas as pd

EXCEL_SHEET_NAME_LIMIT = 31
MAX_COLUMN_WIDTH = 50
EXPORT_FORMATS = ('excel', 'csv')


def excel_sheet_name(name: str) -> str:
    """Sheet-safe name; Excel rejects names longer than 31 characters."""
    if len(name) <= EXCEL_SHEET_NAME_LIMIT:
        return name
    short = name[:EXCEL_SHEET_NAME_LIMIT]
    warnings.warn(f"Sheet name '{name}' shortened to '{short}'")
    return short


def metadata_table(metadata: Dict[str, Any]) -> pd.DataFrame:
    """Key/value table of run metadata, values stringified."""
    return pd.DataFrame({'key': list(metadata), 'value': [str(v) for v in metadata.values()]})


def _fit_column_widths(worksheet) -> None:
    for cells in worksheet.iter_cols():
        longest = max((len(str(c.value)) for c in cells if c.value is not None), default=0)
        worksheet.column_dimensions[cells[0].column_letter].width = min(longest + 2, MAX_COLUMN_WIDTH)


class ExcelExporter:
    """
    Collects tables and writes them as the sheets of one workbook (openpyxl).

    Attributes:
        filepath (Path): Workbook path
        tables (Dict[str, Tuple[pd.DataFrame, bool]]): sheet name -> (table, write index)
    """

    def __init__(self, filepath: str):
        self.filepath = Path(filepath)
        self.tables: Dict[str, Tuple[pd.DataFrame, bool]] = {}

    def add_table(self, name: str, table: pd.DataFrame, index: bool = False) -> None:
        if not isinstance(table, pd.DataFrame):
            raise ValueError(f"Expected a pandas DataFrame for '{name}', got {type(table).__name__}")
        self.tables[excel_sheet_name(name)] = (table, index)

    def write(self, freeze_header: bool = True) -> Path:
        """
        Write every collected table; each sheet gets fitted column widths
        and, optionally, a frozen header row.

        Returns:
            Path of the workbook
        """
        if not self.tables:
            raise ValueError("No tables to write")

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        with pd.ExcelWriter(self.filepath, engine='openpyxl') as writer:
            for name, (table, index) in self.tables.items():
                table.to_excel(writer, sheet_name=name, index=index)
                worksheet = writer.sheets[name]
                _fit_column_widths(worksheet)
                if freeze_header:
                    worksheet.freeze_panes = 'A2'

        print(f"    💾 Workbook written: {self.filepath} ({len(self.tables)} sheets)")
        return self.filepath


class CSVExporter:
    """Writes each table to its own CSV file inside one directory."""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def write_table(self, name: str, table: pd.DataFrame, index: bool = False) -> Path:
        """Write ``table`` as ``<name lowercased>.csv``."""
        path = self.directory / f"{name.lower()}.csv"
        table.to_csv(path, index=index)
        return path


class ReportExporter:
    """
    Exports all report tables of a run in one call.

    Excel output is a single workbook (one sheet per table); CSV output is a
    directory holding one file per table. Metadata, when given, becomes an
    extra 'Metadata' table.
    """

    def __init__(self, output_path: str, format: str = 'excel', include_timestamp: bool = False):
        """
        Args:
            output_path: Workbook path (excel) or directory (csv)
            format: 'excel' or 'csv'
            include_timestamp: Append a run timestamp to the file or directory name
        """
        if format not in EXPORT_FORMATS:
            raise ValueError(f"Format must be one of {EXPORT_FORMATS}, got '{format}'")
        self.format = format

        path = Path(output_path)
        if format == 'excel':
            path = path.with_suffix('.xlsx')
        if include_timestamp:
            stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            path = path.with_name(f"{path.stem}_{stamp}{path.suffix}")
        self.output_path = path

    def export(
        self,
        tables: Dict[str, pd.DataFrame],
        metadata: Optional[Dict[str, Any]] = None,
        index_tables: Iterable[str] = ()
    ) -> str:
        """
        Args:
            tables: Table name -> DataFrame, in output order
            metadata: Optional run metadata (config values, results summary)
            index_tables: Names of tables whose index is written

        Returns:
            Path of the workbook or the CSV directory
        """
        tables = dict(tables)
        if metadata:
            tables['Metadata'] = metadata_table(metadata)
        with_index = set(index_tables)

        if self.format == 'excel':
            workbook = ExcelExporter(str(self.output_path))
            for name, table in tables.items():
                workbook.add_table(name, table, index=name in with_index)
            workbook.write()
        else:
            directory = CSVExporter(str(self.output_path))
            for name, table in tables.items():
                directory.write_table(name, table, index=name in with_index)
            print(f"    💾 {len(tables)} CSV tables written to {self.output_path}")

        return str(self.output_path)
