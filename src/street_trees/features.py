"""
Categorical domains and the feature encoder shared by training and prediction.

A CategoricalDomain is a closed list of levels in canonical order. The
encoder learns one per categorical feature at fit time and reuses exactly
those domains at prediction time, so encoded columns line up between the
two. Values outside a domain raise LevelMismatch and missing values raise
MalformedInput instead of being coerced.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import OneHotEncoder, OrdinalEncoder

from .exceptions import LevelMismatch, MalformedInput, SchemaMismatch


@dataclass(frozen=True)
class CategoricalDomain:
    """
    Closed, ordered set of levels for one categorical column.

    Integer codes and indicator columns come from sklearn's OrdinalEncoder
    and OneHotEncoder, both built with this domain's levels as their only
    categories.
    """
    name: str
    levels: Tuple[Any, ...]
    ordered: bool = False

    @classmethod
    def from_series(cls, series: pd.Series, name: str = None) -> "CategoricalDomain":
        """
        Build a domain from a column.

        Categorical columns keep their declared categories and ordering.
        Other columns use their sorted distinct non-missing values.
        """
        name = name or series.name
        if isinstance(series.dtype, pd.CategoricalDtype):
            return cls(name, tuple(series.cat.categories), bool(series.cat.ordered))
        levels = sorted(series.dropna().unique().tolist(), key=lambda v: (str(type(v)), v))
        return cls(name, tuple(levels), False)

    def __len__(self) -> int:
        return len(self.levels)

    def __contains__(self, value) -> bool:
        return value in self.levels

    def check(self, series: pd.Series) -> None:
        """
        Raise if the column cannot be encoded with this domain.

        Raises:
            MalformedInput: The column holds missing values.
            LevelMismatch: The column holds values outside the domain.
        """
        n_missing = int(series.isna().sum())
        if n_missing:
            raise MalformedInput(
                f"Column '{self.name}' has {n_missing} missing values; "
                f"categorical features must be complete"
            )
        unknown = set(series.unique().tolist()) - set(self.levels)
        if unknown:
            raise LevelMismatch(self.name, unknown, self.levels)

    def codes(self, series: pd.Series) -> np.ndarray:
        """Integer position of each value in the level order."""
        if len(series) == 0:
            return np.empty(0, dtype=np.int64)
        encoded = self._transform(self._ordinal_encoder(), series)
        return encoded.ravel().astype(np.int64)

    def decode(self, codes: Sequence[int]) -> np.ndarray:
        codes = np.asarray(codes, dtype=np.int64).reshape(-1, 1)
        if len(codes) == 0:
            return np.empty(0, dtype=object)
        return self._ordinal_encoder().inverse_transform(codes).ravel()

    def one_hot_columns(self) -> List[str]:
        return [f"{self.name}={level}" for level in self.levels]

    def one_hot(self, series: pd.Series) -> pd.DataFrame:
        """Indicator columns in level order."""
        if len(series) == 0:
            encoded = np.empty((0, len(self.levels)), dtype=np.int8)
        else:
            encoded = self._transform(self._one_hot_encoder(), series)
        return pd.DataFrame(encoded, columns=self.one_hot_columns(), index=series.index)

    def restrict_to(self, observed: Sequence[Any]) -> "CategoricalDomain":
        """Same domain limited to the observed levels, canonical order kept."""
        keep = set(observed)
        return CategoricalDomain(
            self.name, tuple(level for level in self.levels if level in keep), self.ordered
        )

    def _column(self, values) -> np.ndarray:
        return np.asarray(list(values), dtype=object).reshape(-1, 1)

    def _categories(self) -> List[np.ndarray]:
        return [np.asarray(self.levels, dtype=object)]

    def _ordinal_encoder(self) -> OrdinalEncoder:
        encoder = OrdinalEncoder(categories=self._categories(), handle_unknown='error', dtype=np.int64)
        return encoder.fit(self._column(self.levels))

    def _one_hot_encoder(self) -> OneHotEncoder:
        encoder = OneHotEncoder(
            categories=self._categories(), handle_unknown='error', sparse_output=False, dtype=np.int8
        )
        return encoder.fit(self._column(self.levels))

    def _transform(self, encoder, series: pd.Series) -> np.ndarray:
        self.check(series)
        try:
            return encoder.transform(self._column(series))
        except ValueError as e:
            unknown = set(series.unique().tolist()) - set(self.levels)
            raise LevelMismatch(self.name, unknown, self.levels) from e


def infer_domains(df: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> Dict[str, CategoricalDomain]:
    """
    Domains for every categorical column of a table.

    Run on the cleaned table before splitting so training and holdout share
    one set of levels.
    """
    columns = list(df.columns) if columns is None else list(columns)
    domains = {}
    for col in columns:
        series = df[col]
        if isinstance(series.dtype, pd.CategoricalDtype) or not pd.api.types.is_numeric_dtype(series):
            domains[col] = CategoricalDomain.from_series(series, name=col)
    return domains


class FeatureEncoder:
    """
    Turns a table of mixed numeric/categorical features into a numeric matrix.

    Numeric features pass through as floats. Ordered categoricals are coded
    by rank. Unordered categoricals are one-hot encoded in level order.
    """

    def __init__(self, features: Sequence[str], domains: Optional[Dict[str, CategoricalDomain]] = None):
        self.features = list(features)
        self.fixed_domains = dict(domains or {})
        self.domains: Dict[str, CategoricalDomain] = {}
        self.numeric_features: List[str] = []
        self.encoded_columns: List[str] = []
        self.source_feature: Dict[str, str] = {}
        self.is_fitted = False

    def fit(self, df: pd.DataFrame) -> "FeatureEncoder":
        self._check_columns(df)
        self.domains = {}
        self.numeric_features = []
        self.encoded_columns = []
        self.source_feature = {}

        for feature in self.features:
            column = df[feature]
            if feature in self.fixed_domains:
                domain = self.fixed_domains[feature]
            elif isinstance(column.dtype, pd.CategoricalDtype) or not pd.api.types.is_numeric_dtype(column):
                domain = CategoricalDomain.from_series(column, name=feature)
            else:
                self.numeric_features.append(feature)
                self._add_encoded(feature, feature)
                continue

            domain.check(column)
            self.domains[feature] = domain
            if domain.ordered:
                self._add_encoded(feature, feature)
            else:
                for encoded in domain.one_hot_columns():
                    self._add_encoded(encoded, feature)

        self.is_fitted = True
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        if not self.is_fitted:
            raise ValueError("Encoder must be fitted before transform. Call fit first.")
        self._check_columns(df)

        parts = []
        for feature in self.features:
            column = df[feature]
            domain = self.domains.get(feature)
            if domain is None:
                parts.append(pd.to_numeric(column, errors='raise').astype(float).rename(feature))
            elif domain.ordered:
                parts.append(pd.Series(domain.codes(column), index=df.index, name=feature))
            else:
                parts.append(domain.one_hot(column))

        if not parts:
            return pd.DataFrame(index=df.index)
        X = pd.concat(parts, axis=1)
        return X[self.encoded_columns]

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.fit(df).transform(df)

    @property
    def n_encoded(self) -> int:
        return len(self.encoded_columns)

    def _add_encoded(self, encoded: str, feature: str) -> None:
        self.encoded_columns.append(encoded)
        self.source_feature[encoded] = feature

    def _check_columns(self, df: pd.DataFrame) -> None:
        missing = [f for f in self.features if f not in df.columns]
        if missing:
            raise SchemaMismatch(f"Feature columns are missing: {missing}")
