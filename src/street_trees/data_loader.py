"""
Data loading and initial inspection module.
"""
import csv
from pathlib import Path
from typing import Dict, Any, Union

import pandas as pd

from .config import DATA_PATH, NA_VALUES, ENCODING
from .exceptions import SourceUnavailable, MalformedInput


def load_data(filepath: Union[str, Path] = None) -> pd.DataFrame:
    """
    Load the street tree table from a CSV file.

    Only the empty string and the literal "N/A" are read as missing.

    Args:
        filepath: Path to CSV file. If None, uses default from config.

    Returns:
        DataFrame with loaded data.

    Raises:
        SourceUnavailable: The file does not exist or cannot be read.
        MalformedInput: Rows do not all have the header's field count.
    """
    if filepath is None:
        filepath = DATA_PATH
    filepath = Path(filepath)

    _check_row_widths(filepath)

    try:
        df = pd.read_csv(
            filepath,
            na_values=NA_VALUES,
            keep_default_na=False,
            encoding=ENCODING,
            low_memory=False,
        )
    except OSError as e:
        raise SourceUnavailable(f"Cannot read {filepath}: {e}", source=str(filepath)) from e
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise MalformedInput(f"Cannot parse {filepath}: {e}", source=str(filepath)) from e

    print(f"✅ Loaded data: {df.shape[0]} samples, {df.shape[1]} columns")
    return df


def _check_row_widths(filepath: Path) -> None:
    """Fail fast when any record's field count differs from the header's."""
    try:
        with open(filepath, newline='', encoding=ENCODING) as handle:
            reader = csv.reader(handle)
            header = next(reader, None)
            if header is None:
                raise MalformedInput("File is empty (no header row)", source=str(filepath))

            width = len(header)
            for row in reader:
                if not row:
                    continue
                if len(row) != width:
                    raise MalformedInput(
                        f"Record ending on line {reader.line_num} has {len(row)} fields, "
                        f"header has {width}",
                        source=str(filepath),
                    )
    except OSError as e:
        raise SourceUnavailable(f"Cannot read {filepath}: {e}", source=str(filepath)) from e
    except UnicodeDecodeError as e:
        raise MalformedInput(f"{filepath} is not valid {ENCODING}: {e}", source=str(filepath)) from e


def get_data_info(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Get summary information about the dataset.

    Args:
        df: Input DataFrame.

    Returns:
        Dictionary with dataset information.
    """
    missing_by_column = df.isnull().sum()
    info = {
        'n_samples': len(df),
        'n_total_columns': len(df.columns),
        'missing_values': int(missing_by_column.sum()),
        'rows_with_missing': int(df.isnull().any(axis=1).sum()),
        'columns_with_missing': int((missing_by_column > 0).sum()),
        'duplicate_rows': int(df.duplicated().sum()),
        'memory_mb': df.memory_usage(deep=True).sum() / 1024**2,
    }

    if 'condition' in df.columns:
        info['condition_distribution'] = df['condition'].value_counts().to_dict()

    return info


def print_data_report(df: pd.DataFrame) -> None:
    """
    Print a data quality report.

    Args:
        df: Input DataFrame.
    """
    info = get_data_info(df)

    print("\n" + "="*60)
    print("📊 DATASET OVERVIEW")
    print("="*60)
    print(f"  Total samples:     {info['n_samples']:,}")
    print(f"  Total columns:     {info['n_total_columns']}")
    print(f"  Memory usage:      {info['memory_mb']:.2f} MB")

    print("\n" + "-"*60)
    print("📋 DATA QUALITY")
    print("-"*60)
    print(f"  Missing values:    {info['missing_values']}")
    print(f"  Rows w/ missing:   {info['rows_with_missing']}")
    print(f"  Cols w/ missing:   {info['columns_with_missing']}")
    print(f"  Duplicate rows:    {info['duplicate_rows']}")

    if info.get('condition_distribution'):
        print("\n" + "-"*60)
        print("🌳 CONDITION DISTRIBUTION")
        print("-"*60)
        dist = info['condition_distribution']
        total = sum(dist.values())
        for level, count in sorted(dist.items(), key=lambda x: x[1], reverse=True):
            pct = count / total * 100
            bar = "█" * int(pct / 2)
            print(f"  {str(level):10s}: {count:6d} ({pct:5.1f}%) {bar}")

    print("\n" + "="*60)
