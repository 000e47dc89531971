"""
Configuration settings for the Pittsburgh street tree analysis pipeline.

Fixed cleaning rules, split settings and random-forest defaults.
"""
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
DATA_PATH = PROJECT_ROOT / "data" / "pittsburgh_trees.csv"
OUTPUT_DIR = PROJECT_ROOT / "output"
MODELS_DIR = OUTPUT_DIR / "models"

# Loader settings
NA_VALUES = ["", "N/A"]
ENCODING = "utf-8"

# Schema settings
INTERNAL_ID_COLUMN = "_id"

# Raw export label -> canonical short name
COLUMN_RENAMES = {
    'stormwater_benefits_dollar_value': 'stormwater_benefits',
    'stormwater_benefits_runoff_elim': 'stormwater_elimination',
    'property_value_benefits_dollarvalue': 'property_value_benefits',
    'property_value_benefits_leaf_surface_area': 'leaf_surface_area',
    'energy_benefits_electricity_dollar_value': 'electricity_benefits',
    'energy_benefits_gas_dollar_value': 'gas_benefits',
    'air_quality_benfits_o3dep_dollar_value': 'air_o3_deposition_benefits',
    'air_quality_benfits_o3dep_lbs': 'air_o3_deposition_lbs',
    'air_quality_benfits_vocavd_dollar_value': 'air_voc_avoided_benefits',
    'air_quality_benfits_vocavd_lbs': 'air_voc_avoided_lbs',
    'air_quality_benfits_no2dep_dollar_value': 'air_no2_deposition_benefits',
    'air_quality_benfits_no2dep_lbs': 'air_no2_deposition_lbs',
    'air_quality_benfits_no2avoided_dollar_value': 'air_no2_avoided_benefits',
    'air_quality_benfits_no2avoided_lbs': 'air_no2_avoided_lbs',
    'air_quality_benfits_so2dep_dollar_value': 'air_so2_deposition_benefits',
    'air_quality_benfits_so2dep_lbs': 'air_so2_deposition_lbs',
    'air_quality_benfits_so2avoided_dollar_value': 'air_so2_avoided_benefits',
    'air_quality_benfits_so2avoided_lbs': 'air_so2_avoided_lbs',
    'air_quality_benfits_pm10depdollar_value': 'air_pm10_deposition_benefits',
    'air_quality_benfits_pm10dep_lbs': 'air_pm10_deposition_lbs',
    'air_quality_benfits_pm10avoided_dollar_value': 'air_pm10_avoided_benefits',
    'air_quality_benfits_pm10avoided_lbs': 'air_pm10_avoided_lbs',
    'air_quality_benfits_total_dollar_value': 'total_air_benefits',
    'air_quality_benfits_total_lbs': 'air_total_lbs',
    'co2_benefits_dollar_value': 'co2_benefits',
    'co2_benefits_sequestered_lbs': 'co2_sequestered_lbs',
    'co2_benefits_sequestered_value': 'co2_sequestered_benefits',
    'co2_benefits_avoided_lbs': 'co2_avoided_lbs',
    'co2_benefits_avoided_value': 'co2_avoided_benefits',
    'co2_benefits_decomp_lbs': 'co2_decomposition_lbs',
    'co2_benefits_maint_lbs': 'co2_maintenance_lbs',
    'co2_benefits_totalco2_lbs': 'co2_total_lbs',
    'overall_benefits_dollar_value': 'overall_benefits',
}

IDENTITY_COLUMNS = ['id', 'address_number', 'street']
GEO_COLUMNS = [
    'latitude', 'longitude', 'neighborhood', 'council_district', 'ward',
    'tract', 'public_works_division', 'pli_division', 'police_zone', 'fire_zone',
]
TAXONOMY_COLUMNS = ['common_name', 'scientific_name']

PHYSICAL_COLUMNS = [
    'height', 'width', 'growth_space_length', 'growth_space_width',
    'diameter_base_height', 'stems',
]
CONTEXT_COLUMNS = ['growth_space_type', 'overhead_utilities', 'land_use', 'condition']

# Columns every downstream stage reads by canonical name
REQUIRED_COLUMNS = (
    IDENTITY_COLUMNS + PHYSICAL_COLUMNS + CONTEXT_COLUMNS
    + list(COLUMN_RENAMES.values())
)

# Cleaning rules
MAX_STORMWATER_ELIMINATION = 10000  # gallons, exclusive
MAX_HEIGHT = 125  # feet, exclusive

GROWTH_SPACE_RECODES = {
    'Well or Pit': 'Well/Pit',
    'Open or Unrestricted': 'Open',
    'Open or Restricted': 'Restricted',
    'Tree Lawn or Parkway': 'Tree Lawn',
}
CANONICAL_GROWTH_SPACE_TYPES = sorted(set(GROWTH_SPACE_RECODES.values()))

OVERHEAD_RECODES = {'Conflicting': 'Yes'}
OVERHEAD_LEVELS = ['No', 'Yes']

# Lowest to highest
CONDITION_LEVELS = ['Dead', 'Critical', 'Poor', 'Fair', 'Good', 'Very Good', 'Excellent']

# Derive overhead_numeric after folding "Conflicting" into "Yes".
# False keeps the historical order, which leaves conflicting rows at 0.
OVERHEAD_FLAG_AFTER_RECODE = False

# Split settings
RANDOM_STATE = 1234
TRAIN_SIZE = 0.80
MIN_SPLIT_ROWS = 2
MIN_TRAIN_ROWS = 10

# Land-use question
LAND_USE_RECODES = {
    'Residential': 'Residential',
    'Commercial/Industrial': 'Industrial',
}

# Evaluation settings
TOP_K_FEATURES = 10

# ============================================================================
# RANDOM FOREST DEFAULTS
# ============================================================================

N_ESTIMATORS = 500
REGRESSION_MIN_SAMPLES_LEAF = 5
CLASSIFICATION_MIN_SAMPLES_LEAF = 1
N_JOBS = -1
