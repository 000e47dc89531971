"""
Pittsburgh Street Tree Analysis Pipeline

Cleans the city street tree export and fits one random forest per research
question.

Modules:
    - config: Configuration settings, rename/recode tables and hyperparameters
    - exceptions: Error types for shared and per-question failures
    - data_loader: Data loading and initial inspection
    - preprocessing: Schema normalization, filtering, derivation, split
    - features: Categorical domains and feature encoding
    - questions: Research questions and their feature manifests
    - models: Random-forest training, persistence and caching
    - evaluation: OOB error, confusion matrices and feature importance
    - main: Main pipeline orchestration
"""

__version__ = "1.0.0"
__author__ = "Pittsburgh Street Trees Project"
