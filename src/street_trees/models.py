"""
Random-forest training, persistence and the model cache.

One model is trained per research question. A fitted model is stored as a
joblib bundle together with the feature encoder and target domain it was
fit with, so a reloaded model predicts exactly like the in-memory one.

Models:
1. RandomForestRegressor - stormwater elimination, air-quality benefit
2. RandomForestClassifier - overhead utilities, land use
"""
import hashlib
import json
import math
import pickle
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import joblib
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.metrics import r2_score

from .config import (
    RANDOM_STATE, N_ESTIMATORS, N_JOBS, MODELS_DIR, MIN_TRAIN_ROWS,
    REGRESSION_MIN_SAMPLES_LEAF, CLASSIFICATION_MIN_SAMPLES_LEAF,
)
from .evaluation import rmse
from .exceptions import InsufficientData, MalformedInput, SourceUnavailable
from .features import CategoricalDomain, FeatureEncoder
from .questions import ResearchQuestion, RESEARCH_QUESTIONS


@dataclass(frozen=True)
class ForestParams:
    """
    Hyperparameters shared by all questions.

    max_features and min_samples_leaf default by task kind when None:
    floor(p / 3) and 5 for regression, floor(sqrt(p)) and 1 for
    classification, where p is the number of encoded feature columns.
    """
    n_estimators: int = N_ESTIMATORS
    max_features: Optional[int] = None
    min_samples_leaf: Optional[int] = None
    random_state: int = RANDOM_STATE
    n_jobs: int = N_JOBS

    def resolve(self, task_is_classification: bool, n_features: int) -> Dict[str, Any]:
        """sklearn keyword arguments for a forest over n_features columns."""
        if self.max_features is not None:
            max_features = self.max_features
        elif task_is_classification:
            max_features = int(math.floor(math.sqrt(n_features)))
        else:
            max_features = n_features // 3

        if self.min_samples_leaf is not None:
            min_samples_leaf = self.min_samples_leaf
        elif task_is_classification:
            min_samples_leaf = CLASSIFICATION_MIN_SAMPLES_LEAF
        else:
            min_samples_leaf = REGRESSION_MIN_SAMPLES_LEAF

        return {
            'n_estimators': self.n_estimators,
            'max_features': max(1, min(max_features, n_features)),
            'min_samples_leaf': min_samples_leaf,
            'random_state': self.random_state,
        }


def fingerprint_frame(df: pd.DataFrame) -> str:
    """Stable content hash of a table: values, row labels and column names."""
    digest = hashlib.sha256()
    digest.update("\x1f".join(map(str, df.columns)).encode("utf-8"))
    digest.update("\x1f".join(str(dtype) for dtype in df.dtypes).encode("utf-8"))
    digest.update(pd.util.hash_pandas_object(df, index=True).to_numpy().tobytes())
    return digest.hexdigest()


@dataclass
class FittedModel:
    """A trained forest with everything needed to predict and explain it."""
    question: ResearchQuestion
    estimator: Any
    encoder: FeatureEncoder
    target_domain: Optional[CategoricalDomain]
    params: Dict[str, Any]
    fingerprint: str
    n_train: int
    oob_metrics: Dict[str, float] = field(default_factory=dict)

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict for rows holding this question's feature columns.

        Classifiers return labels from the target domain, not codes.
        """
        encoded = self.encoder.transform(X)
        predictions = self.estimator.predict(encoded)
        if self.target_domain is not None:
            return self.target_domain.decode(predictions)
        return predictions

    def feature_importance(self, top_k: Optional[int] = None) -> pd.DataFrame:
        """
        Impurity-based importance summed back onto source features.

        One-hot columns of a categorical feature count as that feature.
        """
        importance = pd.Series(
            self.estimator.feature_importances_, index=self.encoder.encoded_columns
        )
        by_feature = importance.groupby(self.encoder.source_feature).sum()
        importance_df = pd.DataFrame({
            'feature': by_feature.index,
            'importance': by_feature.to_numpy(),
        }).sort_values('importance', ascending=False, kind='mergesort')
        if top_k is not None:
            importance_df = importance_df.head(top_k)
        return importance_df.reset_index(drop=True)

    def to_bundle(self) -> Dict[str, Any]:
        return {
            "question": self.question.key,
            "model": self.estimator,
            "encoder": self.encoder,
            "target_domain": self.target_domain,
            "params": self.params,
            "fingerprint": self.fingerprint,
            "n_train": self.n_train,
            "oob_metrics": self.oob_metrics,
        }

    @classmethod
    def from_bundle(cls, bundle: Dict[str, Any]) -> "FittedModel":
        return cls(
            question=RESEARCH_QUESTIONS[bundle["question"]],
            estimator=bundle["model"],
            encoder=bundle["encoder"],
            target_domain=bundle["target_domain"],
            params=bundle["params"],
            fingerprint=bundle["fingerprint"],
            n_train=bundle["n_train"],
            oob_metrics=bundle.get("oob_metrics", {}),
        )


def save_model(model: FittedModel, path: Union[str, Path]) -> Path:
    """Write the bundle to a temporary file, then move it into place."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        joblib.dump(model.to_bundle(), tmp_path)
        tmp_path.replace(path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    return path


def load_model(path: Union[str, Path]) -> FittedModel:
    """
    Load a bundle written by save_model.

    Raises:
        SourceUnavailable: The file does not exist.
        MalformedInput: The file is truncated, corrupt or not a model bundle.
    """
    path = Path(path)
    if not path.is_file():
        raise SourceUnavailable("Model file not found", source=str(path))
    try:
        bundle = joblib.load(path)
    except (pickle.UnpicklingError, EOFError, OSError, ValueError, AttributeError,
            ImportError, IndexError, KeyError, TypeError) as e:
        raise MalformedInput(f"Unreadable model file: {type(e).__name__}: {e}", source=str(path)) from e
    required = {"question", "model", "encoder", "target_domain", "params", "fingerprint", "n_train"}
    if not isinstance(bundle, dict) or not required <= set(bundle):
        raise MalformedInput("Not a street tree model bundle", source=str(path))
    if bundle["question"] not in RESEARCH_QUESTIONS:
        raise MalformedInput(f"Unknown research question '{bundle['question']}'", source=str(path))
    return FittedModel.from_bundle(bundle)


class ModelCache:
    """
    Persisted models keyed by question, training-data fingerprint and
    hyperparameters.

    An artifact that cannot be read counts as a miss; the retrained model
    overwrites it.
    """

    def __init__(self, directory: Union[str, Path] = MODELS_DIR):
        self.directory = Path(directory)

    @staticmethod
    def make_key(question: ResearchQuestion, fingerprint: str, params: Dict[str, Any]) -> str:
        payload = json.dumps(
            {"question": question.key, "fingerprint": fingerprint, "params": params},
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def path_for(self, question: ResearchQuestion, key: str) -> Path:
        return self.directory / f"{question.artifact_name}_{key[:16]}.joblib"

    def load(self, question: ResearchQuestion, fingerprint: str, params: Dict[str, Any]) -> Optional[FittedModel]:
        path = self.path_for(question, self.make_key(question, fingerprint, params))
        if not path.exists():
            return None
        try:
            return load_model(path)
        except MalformedInput as e:
            print(f"   ⚠️  Ignoring cached {question.key} model: {e}")
            return None

    def save(self, model: FittedModel) -> Path:
        key = self.make_key(model.question, model.fingerprint, model.params)
        return save_model(model, self.path_for(model.question, key))


class ModelTrainer:
    """
    Trains one random forest per research question.

    `fit` always trains (and writes the artifact when a cache is set);
    `load_or_fit` reuses the cached artifact for the same question, data and
    hyperparameters.
    """

    def __init__(
        self,
        params: ForestParams = None,
        cache: Optional[ModelCache] = None,
        min_train_rows: int = MIN_TRAIN_ROWS,
        domains: Optional[Dict[str, CategoricalDomain]] = None,
    ):
        self.params = params or ForestParams()
        self.cache = cache
        self.domains = dict(domains or {})
        self.min_train_rows = min_train_rows
        self.models: Dict[str, FittedModel] = {}

    def fit(self, question: ResearchQuestion, train: pd.DataFrame) -> FittedModel:
        X, y = self._prepare(question, train)
        encoder, target_domain, params = self._plan(question, X, y)
        fingerprint = self._fingerprint(X, y, encoder)
        model = self._train(question, X, y, encoder, target_domain, params, fingerprint)
        if self.cache is not None:
            path = self.cache.save(model)
            print(f"   ✅ Saved {question.key} model to {path}")
        self.models[question.key] = model
        return model

    def load_or_fit(self, question: ResearchQuestion, train: pd.DataFrame) -> FittedModel:
        if self.cache is None:
            return self.fit(question, train)

        X, y = self._prepare(question, train)
        encoder, target_domain, params = self._plan(question, X, y)
        fingerprint = self._fingerprint(X, y, encoder)

        model = self.cache.load(question, fingerprint, params)
        if model is not None:
            print(f"   ✅ Loaded cached {question.key} model (trained on {model.n_train} rows)")
            self.models[question.key] = model
            return model

        model = self._train(question, X, y, encoder, target_domain, params, fingerprint)
        path = self.cache.save(model)
        print(f"   ✅ Saved {question.key} model to {path}")
        self.models[question.key] = model
        return model

    def _prepare(self, question: ResearchQuestion, train: pd.DataFrame):
        X, y = question.prepare(train)
        if len(y) < self.min_train_rows:
            raise InsufficientData(
                f"'{question.key}' has {len(y)} training rows, needs at least {self.min_train_rows}"
            )
        if question.is_classification and y.nunique() < 2:
            raise InsufficientData(
                f"'{question.key}' training rows hold a single class: {y.unique().tolist()}"
            )
        return X, y

    def _plan(self, question: ResearchQuestion, X: pd.DataFrame, y: pd.Series):
        """Fit the encoder and resolve hyperparameters for this training set."""
        domains = {f: d for f, d in self.domains.items() if f in question.features}
        encoder = FeatureEncoder(question.features, domains=domains).fit(X)
        target_domain = (
            CategoricalDomain.from_series(y, name=question.target)
            if question.is_classification else None
        )
        params = self.params.resolve(question.is_classification, encoder.n_encoded)
        return encoder, target_domain, params

    @staticmethod
    def _fingerprint(X: pd.DataFrame, y: pd.Series, encoder: FeatureEncoder) -> str:
        """Hash of the training rows plus the categorical levels they are encoded with."""
        levels = sorted((name, repr(d.levels), d.ordered) for name, d in encoder.domains.items())
        return hashlib.sha256(
            (fingerprint_frame(pd.concat([X, y], axis=1)) + repr(levels)).encode("utf-8")
        ).hexdigest()

    def _train(self, question, X, y, encoder, target_domain, params, fingerprint) -> FittedModel:
        print(f"🚀 Training {question.key} ({question.task}, {len(y)} rows, "
              f"{encoder.n_encoded} encoded features, mtry={params['max_features']})...",
              end=" ", flush=True)

        X_enc = encoder.transform(X)
        if question.is_classification:
            estimator = RandomForestClassifier(
                oob_score=True, bootstrap=True, n_jobs=self.params.n_jobs, **params
            )
            y_fit = target_domain.codes(y)
        else:
            estimator = RandomForestRegressor(
                oob_score=True, bootstrap=True, n_jobs=self.params.n_jobs, **params
            )
            y_fit = y.astype(float).to_numpy()

        estimator.fit(X_enc, y_fit)
        oob_metrics = self._oob_metrics(estimator, y_fit, question.is_classification)

        model = FittedModel(
            question=question,
            estimator=estimator,
            encoder=encoder,
            target_domain=target_domain,
            params=params,
            fingerprint=fingerprint,
            n_train=len(y),
            oob_metrics=oob_metrics,
        )

        summary = ", ".join(f"{k}={v:.4f}" for k, v in oob_metrics.items())
        print(f"Done! {summary}")
        return model

    @staticmethod
    def _oob_metrics(estimator, y_fit: np.ndarray, is_classification: bool) -> Dict[str, float]:
        if is_classification:
            return {'oob_error': float(1.0 - estimator.oob_score_)}
        oob_pred = estimator.oob_prediction_
        return {
            'oob_rmse': rmse(y_fit, oob_pred),
            'oob_r2': float(r2_score(y_fit, oob_pred)),
        }

    def get_params_summary(self) -> pd.DataFrame:
        """Resolved hyperparameters of every trained model."""
        rows = [{'question': key, 'n_train': m.n_train, **m.params} for key, m in self.models.items()]
        return pd.DataFrame(rows)
