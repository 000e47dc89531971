"""
Data preprocessing module: schema normalization, row filtering, derived
features, missing-data elimination and the train/holdout split.

Every step returns a new DataFrame; the input table is never modified.
"""
import warnings
from dataclasses import dataclass, field, asdict
from typing import Tuple, Dict, List

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from .config import (
    INTERNAL_ID_COLUMN, COLUMN_RENAMES, REQUIRED_COLUMNS,
    MAX_STORMWATER_ELIMINATION, MAX_HEIGHT,
    GROWTH_SPACE_RECODES, OVERHEAD_RECODES, CONDITION_LEVELS,
    OVERHEAD_FLAG_AFTER_RECODE,
    RANDOM_STATE, TRAIN_SIZE, MIN_SPLIT_ROWS,
)
from .exceptions import SchemaMismatch, InsufficientData


CONDITION_DTYPE = pd.CategoricalDtype(categories=CONDITION_LEVELS, ordered=True)


# ============================================================================
# Schema normalization
# ============================================================================

def normalize_schema(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename raw export labels to canonical short names and drop the internal id.

    Columns outside the rename table pass through unchanged. A column that
    already carries its canonical name is accepted as is, so normalizing a
    normalized table is a no-op.

    Raises:
        SchemaMismatch: A mapped column is absent under both names, both
            names are present at once, or a required column is missing.
    """
    df = df.drop(columns=[INTERNAL_ID_COLUMN], errors='ignore')

    renames = {}
    absent = []
    for raw, canonical in COLUMN_RENAMES.items():
        if raw in df.columns:
            if canonical in df.columns:
                raise SchemaMismatch(
                    f"Both '{raw}' and its canonical name '{canonical}' are present"
                )
            renames[raw] = canonical
        elif canonical not in df.columns:
            absent.append(raw)

    df = df.rename(columns=renames)

    absent += [col for col in REQUIRED_COLUMNS
               if col not in df.columns and col not in COLUMN_RENAMES.values()]
    if absent:
        raise SchemaMismatch(f"Expected columns are missing: {absent}")

    return df


# ============================================================================
# Row filter & feature derivation
# ============================================================================

def filter_outliers(
    df: pd.DataFrame,
    max_stormwater: float = MAX_STORMWATER_ELIMINATION,
    max_height: float = MAX_HEIGHT,
) -> pd.DataFrame:
    """
    Keep rows with stormwater_elimination < max_stormwater and height < max_height.

    Rows with a missing value in either column fail the predicate. Dropped
    rows are gone for the rest of the run.
    """
    stormwater = pd.to_numeric(df['stormwater_elimination'], errors='coerce')
    height = pd.to_numeric(df['height'], errors='coerce')
    keep = (stormwater < max_stormwater) & (height < max_height)
    return df.loc[keep].copy()


def derive_overhead_numeric(df: pd.DataFrame) -> pd.DataFrame:
    """Add overhead_numeric: 1 where overhead_utilities is "Yes", else 0 (missing stays missing)."""
    df = df.copy()
    utilities = df['overhead_utilities']
    flag = (utilities == 'Yes').astype('Int64')
    flag[utilities.isna()] = pd.NA
    df['overhead_numeric'] = flag
    return df


def recode_growth_space_type(df: pd.DataFrame, recodes: Dict[str, str] = None) -> pd.DataFrame:
    """Map growth_space_type labels through the lookup table; unknown labels pass through."""
    recodes = GROWTH_SPACE_RECODES if recodes is None else recodes
    df = df.copy()
    df['growth_space_type'] = df['growth_space_type'].replace(recodes)
    return df


def recode_overhead_utilities(df: pd.DataFrame) -> pd.DataFrame:
    """Fold "Conflicting" into "Yes"."""
    df = df.copy()
    df['overhead_utilities'] = df['overhead_utilities'].replace(OVERHEAD_RECODES)
    return df


def derive_growth_space_area(df: pd.DataFrame) -> pd.DataFrame:
    """Add growth_space_area = growth_space_length * growth_space_width."""
    df = df.copy()
    length = pd.to_numeric(df['growth_space_length'], errors='coerce')
    width = pd.to_numeric(df['growth_space_width'], errors='coerce')
    df['growth_space_area'] = length * width
    return df


def apply_condition_levels(df: pd.DataFrame) -> pd.DataFrame:
    """
    Cast condition to an ordered categorical (Dead < ... < Excellent).

    Row order is unchanged. Labels outside the seven levels become missing.
    """
    df = df.copy()
    before = df['condition']
    df['condition'] = before.astype(CONDITION_DTYPE)

    n_unknown = int((before.notna() & df['condition'].isna()).sum())
    if n_unknown:
        unknown = sorted(before[before.notna() & df['condition'].isna()].astype(str).unique())
        warnings.warn(
            f"{n_unknown} condition values outside the known levels were set to missing: {unknown}"
        )
    return df


def filter_and_derive(
    df: pd.DataFrame,
    overhead_flag_after_recode: bool = OVERHEAD_FLAG_AFTER_RECODE,
) -> pd.DataFrame:
    """
    Run the row filter and the derivations in their fixed order.

    1. filter outliers
    2. overhead_numeric
    3. growth_space_type recode
    4. "Conflicting" -> "Yes"
    5. growth_space_area
    6. ordered condition levels

    With overhead_flag_after_recode, steps 2 and 4 swap so that conflicting
    rows get overhead_numeric = 1.
    """
    df = filter_outliers(df)
    return derive_features(df, overhead_flag_after_recode=overhead_flag_after_recode)


def derive_features(
    df: pd.DataFrame,
    overhead_flag_after_recode: bool = OVERHEAD_FLAG_AFTER_RECODE,
) -> pd.DataFrame:
    """Steps 2-6 of filter_and_derive, on an already filtered table."""
    if overhead_flag_after_recode:
        df = recode_growth_space_type(df)
        df = recode_overhead_utilities(df)
        df = derive_overhead_numeric(df)
    else:
        df = derive_overhead_numeric(df)
        df = recode_growth_space_type(df)
        df = recode_overhead_utilities(df)
    df = derive_growth_space_area(df)
    df = apply_condition_levels(df)
    return df


# ============================================================================
# Missing-data elimination
# ============================================================================

def drop_missing_rows(df: pd.DataFrame) -> pd.DataFrame:
    """Drop every row that has a missing value in any column."""
    n_before = len(df)
    missing_by_column = df.isnull().sum()

    df = df.dropna(how='any').copy()

    # Nullable integer columns can become plain integers once NA-free
    for col in df.columns:
        if isinstance(df[col].dtype, pd.Int64Dtype):
            df[col] = df[col].astype('int64')

    n_after = len(df)
    pct = (n_before - n_after) / n_before * 100 if n_before else 0.0
    print(f"  ✓ Dropped rows with missing values: {n_before} → {n_after} ({pct:.1f}% removed)")

    worst = missing_by_column[missing_by_column > 0].sort_values(ascending=False).head(5)
    for col, count in worst.items():
        print(f"      - {col}: {count} missing")

    return df


# ============================================================================
# Full cleaning pass
# ============================================================================

@dataclass
class CleaningReport:
    """Row counts after each shared cleaning stage."""
    rows_loaded: int = 0
    rows_after_filter: int = 0
    rows_after_missing: int = 0
    conflicting_overhead_rows: int = 0
    columns: List[str] = field(default_factory=list)

    @property
    def rows_dropped_by_filter(self) -> int:
        return self.rows_loaded - self.rows_after_filter

    @property
    def rows_dropped_by_missing(self) -> int:
        return self.rows_after_filter - self.rows_after_missing

    def to_dict(self) -> Dict[str, int]:
        data = asdict(self)
        data.pop('columns')
        data['rows_dropped_by_filter'] = self.rows_dropped_by_filter
        data['rows_dropped_by_missing'] = self.rows_dropped_by_missing
        return data


class DataCleaner:
    """
    Runs normalization, filtering, derivation and missing-data elimination,
    recording how many rows each stage removed.
    """

    def __init__(self, overhead_flag_after_recode: bool = OVERHEAD_FLAG_AFTER_RECODE):
        self.overhead_flag_after_recode = overhead_flag_after_recode
        self.report = CleaningReport()

    def clean(self, df: pd.DataFrame) -> pd.DataFrame:
        print("\n🔧 Cleaning data...")
        self.report = CleaningReport(rows_loaded=len(df))

        df = normalize_schema(df)
        print(f"  ✓ Normalized schema: {len(df.columns)} columns")

        df = filter_outliers(df)
        self.report.rows_after_filter = len(df)
        print(f"  ✓ Filtered outliers (stormwater_elimination < {MAX_STORMWATER_ELIMINATION}, "
              f"height < {MAX_HEIGHT}): removed {self.report.rows_dropped_by_filter} rows")

        n_conflicting = int((df['overhead_utilities'] == 'Conflicting').sum())
        self.report.conflicting_overhead_rows = n_conflicting
        if n_conflicting:
            value = 1 if self.overhead_flag_after_recode else 0
            print(f"  ℹ️  {n_conflicting} 'Conflicting' overhead rows recoded to 'Yes' "
                  f"with overhead_numeric = {value}")

        df = derive_features(df, overhead_flag_after_recode=self.overhead_flag_after_recode)
        print("  ✓ Derived overhead_numeric and growth_space_area, recoded labels")

        df = drop_missing_rows(df)
        self.report.rows_after_missing = len(df)
        self.report.columns = list(df.columns)

        print(f"✅ Done! Shape: {df.shape}")
        return df


def clean_dataset(
    df: pd.DataFrame,
    overhead_flag_after_recode: bool = OVERHEAD_FLAG_AFTER_RECODE,
) -> Tuple[pd.DataFrame, CleaningReport]:
    """Clean a raw table and return it with its CleaningReport."""
    cleaner = DataCleaner(overhead_flag_after_recode=overhead_flag_after_recode)
    cleaned = cleaner.clean(df)
    return cleaned, cleaner.report


# ============================================================================
# Train / holdout split
# ============================================================================

def create_train_holdout_split(
    df: pd.DataFrame,
    train_size: float = TRAIN_SIZE,
    random_state: int = RANDOM_STATE,
    min_rows: int = MIN_SPLIT_ROWS,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split the cleaned table into training and holdout subsets.

    The training subset has floor(train_size * N) rows drawn by a uniform
    random permutation seeded with random_state; the holdout is the rest.
    Row labels are kept, so both subsets can be traced back to the cleaned
    table.

    Args:
        df: Cleaned DataFrame.
        train_size: Proportion of rows for training, in (0, 1).
        random_state: Random seed.
        min_rows: Smallest table that may be split.

    Returns:
        Tuple of (train, holdout).
    """
    if not 0 < train_size < 1:
        raise ValueError(f"train_size must be in (0, 1), got {train_size}")

    n = len(df)
    if n < min_rows:
        raise InsufficientData(f"Need at least {min_rows} rows to split, got {n}")

    n_train = int(np.floor(train_size * n))
    if n_train == 0 or n_train == n:
        raise InsufficientData(
            f"train_size={train_size} leaves an empty subset for {n} rows"
        )

    train, holdout = train_test_split(
        df, train_size=train_size, random_state=random_state, shuffle=True
    )

    print(f"\n✅ Train/holdout split (seed={random_state}):")
    print(f"   Train:   {len(train)} ({len(train)/n*100:.1f}%)")
    print(f"   Holdout: {len(holdout)} ({len(holdout)/n*100:.1f}%)")

    return train, holdout
