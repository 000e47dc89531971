"""
Research questions answered by the random-forest models.

Each question lists the exact feature columns it uses. Identity and
geographic columns never appear, and columns that make up the target are
left out to avoid leakage. New columns in the export are not picked up until
they are added here by name.

The stormwater and air-quality questions keep overall_benefits as a feature
even though that total includes their targets; only the listed component
columns are excluded.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import pandas as pd

from .config import LAND_USE_RECODES
from .exceptions import SchemaMismatch

REGRESSION = "regression"
CLASSIFICATION = "classification"

BASE_FEATURES = (
    'height', 'width', 'growth_space_length', 'growth_space_width',
    'growth_space_area', 'diameter_base_height', 'stems',
    'growth_space_type', 'overhead_utilities', 'overhead_numeric',
    'land_use', 'condition',
)

NON_AIR_BENEFITS = (
    'stormwater_benefits', 'stormwater_elimination',
    'property_value_benefits', 'leaf_surface_area',
    'electricity_benefits', 'gas_benefits',
    'overall_benefits',
)

AIR_BENEFITS = (
    'air_o3_deposition_benefits', 'air_o3_deposition_lbs',
    'air_voc_avoided_benefits', 'air_voc_avoided_lbs',
    'air_no2_deposition_benefits', 'air_no2_deposition_lbs',
    'air_no2_avoided_benefits', 'air_no2_avoided_lbs',
    'air_so2_deposition_benefits', 'air_so2_deposition_lbs',
    'air_so2_avoided_benefits', 'air_so2_avoided_lbs',
    'air_pm10_deposition_benefits', 'air_pm10_deposition_lbs',
    'air_pm10_avoided_benefits', 'air_pm10_avoided_lbs',
    'total_air_benefits', 'air_total_lbs',
)

CO2_BENEFITS = (
    'co2_benefits', 'co2_sequestered_lbs', 'co2_sequestered_benefits',
    'co2_avoided_lbs', 'co2_avoided_benefits', 'co2_decomposition_lbs',
    'co2_maintenance_lbs', 'co2_total_lbs',
)

ALL_BENEFITS = NON_AIR_BENEFITS + AIR_BENEFITS + CO2_BENEFITS


def _without(columns: Tuple[str, ...], *excluded: str) -> Tuple[str, ...]:
    return tuple(c for c in columns if c not in excluded)


@dataclass(frozen=True)
class ResearchQuestion:
    """
    One modelling question: target, task kind and feature manifest.

    restrict_values limits the rows to those whose target is in the given
    set; target_recodes then maps the remaining target labels.
    """
    key: str
    description: str
    target: str
    task: str
    features: Tuple[str, ...]
    positive_class: Any = None
    restrict_values: Optional[Tuple[Any, ...]] = None
    target_recodes: Optional[Dict[Any, Any]] = None

    @property
    def artifact_name(self) -> str:
        return f"{self.key}_{self.task}"

    @property
    def is_classification(self) -> bool:
        return self.task == CLASSIFICATION

    def prepare(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        """
        Select this question's rows and columns.

        Returns:
            Tuple of (features DataFrame, target Series).
        """
        missing = [c for c in self.features + (self.target,) if c not in df.columns]
        if missing:
            raise SchemaMismatch(f"Columns needed by '{self.key}' are missing: {missing}")

        if self.restrict_values is not None:
            df = df[df[self.target].isin(self.restrict_values)]

        X = df[list(self.features)].copy()
        y = df[self.target].copy()
        if self.target_recodes:
            y = y.map(self.target_recodes)
        return X, y


STORMWATER = ResearchQuestion(
    key='stormwater_elimination',
    description='What predicts the gallons of stormwater a tree eliminates?',
    target='stormwater_elimination',
    task=REGRESSION,
    features=BASE_FEATURES + _without(ALL_BENEFITS, 'stormwater_elimination', 'stormwater_benefits'),
)

AIR_QUALITY = ResearchQuestion(
    key='total_air_benefits',
    description='What predicts the dollar value of a tree\'s air-quality benefit?',
    target='total_air_benefits',
    task=REGRESSION,
    features=BASE_FEATURES + NON_AIR_BENEFITS,
)

OVERHEAD_UTILITIES = ResearchQuestion(
    key='overhead_utilities',
    description='Can tree measurements tell whether overhead utilities are present?',
    target='overhead_numeric',
    task=CLASSIFICATION,
    features=_without(BASE_FEATURES, 'overhead_utilities', 'overhead_numeric') + ALL_BENEFITS,
    positive_class=1,
)

LAND_USE = ResearchQuestion(
    key='land_use',
    description='Can tree measurements separate residential from industrial land use?',
    target='land_use',
    task=CLASSIFICATION,
    features=_without(BASE_FEATURES, 'land_use') + ALL_BENEFITS,
    positive_class='Industrial',
    restrict_values=tuple(LAND_USE_RECODES),
    target_recodes=dict(LAND_USE_RECODES),
)

RESEARCH_QUESTIONS = {
    q.key: q for q in (STORMWATER, AIR_QUALITY, OVERHEAD_UTILITIES, LAND_USE)
}
