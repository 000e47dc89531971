"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- A synthetic raw export in the city's column layout
- The same export written to CSV with "N/A" and blank cells
- Cleaned and split tables
- Small, fast forest hyperparameters
"""
import numpy as np
import pandas as pd
import pytest

from street_trees.config import COLUMN_RENAMES, CONDITION_LEVELS
from street_trees.models import ForestParams
from street_trees.preprocessing import clean_dataset, create_train_holdout_split


GROWTH_SPACE_LABELS = ['Well or Pit', 'Open or Unrestricted', 'Open or Restricted',
                       'Tree Lawn or Parkway', 'Median']
OVERHEAD_LABELS = ['Yes', 'No', 'Conflicting']
LAND_USE_LABELS = ['Residential', 'Commercial/Industrial', 'Park', 'Vacant']


def make_raw_trees(n: int = 200, seed: int = 0) -> pd.DataFrame:
    """Raw street tree export with plausible, internally consistent values."""
    rng = np.random.default_rng(seed)

    height = rng.uniform(5, 100, n).round(1)
    dbh = (height * 0.3 + rng.normal(0, 2, n)).clip(1, None).round(1)

    data = {
        '_id': np.arange(1, n + 1),
        'id': np.arange(100000, 100000 + n),
        'address_number': rng.integers(1, 5000, n),
        'street': rng.choice(['Forbes Ave', 'Murray Ave', 'Penn Ave', 'Liberty Ave'], n),
        'common_name': rng.choice(['Maple: Red', 'Oak: Pin', 'Linden: Littleleaf'], n),
        'scientific_name': rng.choice(['Acer rubrum', 'Quercus palustris', 'Tilia cordata'], n),
        'height': height,
        'width': rng.uniform(3, 50, n).round(1),
        'growth_space_length': rng.uniform(2, 20, n).round(1),
        'growth_space_width': rng.uniform(2, 10, n).round(1),
        'growth_space_type': rng.choice(GROWTH_SPACE_LABELS, n),
        'diameter_base_height': dbh,
        'stems': rng.integers(1, 4, n),
        'overhead_utilities': rng.choice(OVERHEAD_LABELS, n, p=[0.4, 0.5, 0.1]),
        'land_use': rng.choice(LAND_USE_LABELS, n, p=[0.5, 0.3, 0.1, 0.1]),
        'condition': rng.choice(CONDITION_LEVELS, n),
    }

    for i, raw in enumerate(COLUMN_RENAMES):
        noise = rng.normal(0, 0.5, n)
        data[raw] = (dbh * (0.1 + 0.05 * i) + noise).clip(0, None).round(2)

    data['stormwater_benefits_runoff_elim'] = (dbh * 60 + rng.normal(0, 50, n)).clip(0, None).round(1)
    data['stormwater_benefits_dollar_value'] = (data['stormwater_benefits_runoff_elim'] * 0.01).round(2)
    air_dollar_columns = [c for c in COLUMN_RENAMES
                          if c.startswith('air_quality') and 'dollar' in c and 'total' not in c]
    data['air_quality_benfits_total_dollar_value'] = sum(data[c] for c in air_dollar_columns).round(2)

    data.update({
        'neighborhood': rng.choice(['Squirrel Hill South', 'Shadyside', 'Bloomfield'], n),
        'council_district': rng.integers(1, 10, n),
        'ward': rng.integers(1, 29, n),
        'tract': rng.choice(['42003140100', '42003070300'], n),
        'public_works_division': rng.integers(1, 6, n),
        'pli_division': rng.integers(1, 29, n),
        'police_zone': rng.integers(1, 7, n),
        'fire_zone': rng.choice(['1-10', '2-7', '3-14'], n),
        'latitude': rng.uniform(40.40, 40.50, n).round(6),
        'longitude': rng.uniform(-80.05, -79.90, n).round(6),
    })
    return pd.DataFrame(data)


# ============================================================
# Raw Data Fixtures
# ============================================================

@pytest.fixture
def raw_trees() -> pd.DataFrame:
    """200 raw rows with no missing values and no outliers."""
    return make_raw_trees(200)


@pytest.fixture
def raw_csv(tmp_path):
    """Raw export on disk with a few blank and "N/A" cells."""
    df = make_raw_trees(200).astype({'street': object, 'land_use': object})
    df.loc[[3, 17], 'street'] = 'N/A'
    df.loc[[25, 40, 41], 'land_use'] = None
    path = tmp_path / "trees.csv"
    df.to_csv(path, index=False)
    return path


# ============================================================
# Cleaned Data Fixtures
# ============================================================

@pytest.fixture
def cleaned_trees(raw_trees) -> pd.DataFrame:
    cleaned, _ = clean_dataset(raw_trees)
    return cleaned


@pytest.fixture
def split_trees(cleaned_trees):
    """(train, holdout) with the default seed and proportion."""
    return create_train_holdout_split(cleaned_trees)


@pytest.fixture
def fast_params() -> ForestParams:
    """Small forests so model tests stay quick."""
    return ForestParams(n_estimators=25, n_jobs=1)
