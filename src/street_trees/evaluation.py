"""
Model evaluation: out-of-bag error for regressors, holdout confusion
matrices for classifiers, and feature-importance rankings.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix, mean_squared_error

from .config import TOP_K_FEATURES, OUTPUT_DIR
from .exceptions import StreetTreeError


@dataclass(frozen=True)
class Rate:
    """A ratio that may be undefined when its denominator is zero."""
    value: Optional[float]
    reason: str = ""

    @classmethod
    def of(cls, numerator: float, denominator: float, reason: str) -> "Rate":
        if denominator == 0:
            return cls(None, reason)
        return cls(float(numerator) / float(denominator))

    @property
    def is_defined(self) -> bool:
        return self.value is not None

    def __str__(self) -> str:
        if self.value is None:
            return f"undefined ({self.reason})"
        return f"{self.value:.4f}"


def rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def aligned_confusion_matrix(
    y_true: Sequence[Any],
    y_pred: Sequence[Any],
    level_order: Optional[Sequence[Any]] = None,
) -> pd.DataFrame:
    """
    Confusion matrix over the labels actually observed in truth or predictions.

    Levels of the domain that appear in neither sequence are dropped, so an
    unused level cannot produce an empty row or column. Rows are actual
    labels and columns are predicted labels.

    Args:
        y_true: Actual labels.
        y_pred: Predicted labels.
        level_order: Canonical level order; observed labels missing from it
            are appended in sorted order.

    Returns:
        Square DataFrame of counts.
    """
    y_true = np.asarray(list(y_true))
    y_pred = np.asarray(list(y_pred))
    if len(y_true) != len(y_pred):
        raise ValueError(f"Length mismatch: {len(y_true)} actual vs {len(y_pred)} predicted")

    observed = set(y_true.tolist()) | set(y_pred.tolist())
    order = [level for level in (level_order or []) if level in observed]
    order += sorted((level for level in observed if level not in order), key=str)

    if order:
        counts = confusion_matrix(y_true, y_pred, labels=order)
    else:
        counts = np.zeros((0, 0), dtype=np.int64)

    return pd.DataFrame(
        counts,
        index=pd.Index(order, name='actual', dtype=object),
        columns=pd.Index(order, name='predicted', dtype=object),
    )


def classification_rates(cm: pd.DataFrame, positive: Any) -> Dict[str, Rate]:
    """
    Accuracy, sensitivity and specificity from an aligned confusion matrix.

    Sensitivity is the true-positive rate for `positive`; specificity is the
    true-negative rate over every other label.
    """
    total = int(cm.to_numpy().sum())
    correct = int(np.trace(cm.to_numpy()))

    if positive in cm.index:
        actual_pos = int(cm.loc[positive].sum())
        tp = int(cm.loc[positive, positive])
        fp = int(cm[positive].sum()) - tp
    else:
        actual_pos = tp = fp = 0
    actual_neg = total - actual_pos
    tn = actual_neg - fp

    return {
        'accuracy': Rate.of(correct, total, "no holdout rows"),
        'sensitivity': Rate.of(tp, actual_pos, f"no actual '{positive}' rows in holdout"),
        'specificity': Rate.of(tn, actual_neg, f"no actual rows other than '{positive}' in holdout"),
    }


class ModelEvaluator:
    """
    Collects evaluation results for every research question.
    """

    def __init__(self, top_k: int = TOP_K_FEATURES):
        self.top_k = top_k
        self.results: Dict[str, Dict[str, Any]] = {}

    def evaluate(self, model, holdout: Optional[pd.DataFrame] = None) -> Dict[str, Any]:
        """Evaluate a FittedModel according to its task kind."""
        if model.question.is_classification:
            if holdout is None:
                raise ValueError("Classification models are evaluated on a holdout subset")
            return self.evaluate_classifier(model, holdout)
        return self.evaluate_regressor(model, holdout)

    def evaluate_regressor(self, model, holdout: Optional[pd.DataFrame] = None) -> Dict[str, Any]:
        """
        Out-of-bag RMSE and variance explained, plus holdout RMSE when given.
        """
        metrics = {
            'oob_rmse': model.oob_metrics['oob_rmse'],
            'oob_r2': model.oob_metrics['oob_r2'],
        }

        if holdout is not None:
            X_hold, y_hold = model.question.prepare(holdout)
            if len(y_hold):
                metrics['holdout_rmse'] = rmse(y_hold.astype(float), model.predict(X_hold))

        self._store(model, metrics)
        return metrics

    def evaluate_classifier(self, model, holdout: pd.DataFrame) -> Dict[str, Any]:
        """
        Confusion matrix and rates on the holdout subset.
        """
        X_hold, y_hold = model.question.prepare(holdout)
        y_pred = model.predict(X_hold)

        cm = aligned_confusion_matrix(y_hold.tolist(), list(y_pred), model.target_domain.levels)
        rates = classification_rates(cm, model.question.positive_class)

        metrics = {
            'oob_error': model.oob_metrics['oob_error'],
            'holdout_rows': int(len(y_hold)),
            'positive_class': model.question.positive_class,
            **rates,
        }
        self._store(model, metrics, cm=cm)
        return metrics

    def record_failure(self, question_key: str, error: Exception) -> None:
        kind = error.kind if isinstance(error, StreetTreeError) else type(error).__name__
        self.results[question_key] = {
            'task': None,
            'metrics': {},
            'status': 'skipped',
            'error_kind': kind,
            'error': str(error),
        }

    def _store(self, model, metrics: Dict[str, Any], cm: pd.DataFrame = None) -> None:
        self.results[model.question.key] = {
            'task': model.question.task,
            'metrics': metrics,
            'confusion_matrix': cm,
            'feature_importance': model.feature_importance(self.top_k),
            'status': 'ok',
        }

    def print_report(self, question_key: str) -> None:
        """Print metrics, confusion matrix and top features for one question."""
        if question_key not in self.results:
            raise ValueError(f"Question '{question_key}' not evaluated yet.")
        result = self.results[question_key]

        print(f"\n{'='*60}")
        print(f"📊 RESULTS: {question_key.upper()}")
        print('='*60)

        if result['status'] != 'ok':
            print(f"  ⚠️  Skipped ({result['error_kind']}): {result['error']}")
            return

        for name, value in result['metrics'].items():
            if isinstance(value, float):
                print(f"  {name:16s}: {value:.4f}")
            else:
                print(f"  {name:16s}: {value}")

        if result.get('confusion_matrix') is not None:
            print("\n  Confusion matrix (rows = actual, columns = predicted):")
            print("  " + result['confusion_matrix'].to_string().replace("\n", "\n  "))

        importance = result['feature_importance']
        print(f"\n  Top {len(importance)} features (impurity decrease):")
        for rank, row in enumerate(importance.itertuples(index=False), start=1):
            print(f"    {rank:2d}. {row.feature:30s} {row.importance:.4f}")

    def get_comparison_table(self) -> pd.DataFrame:
        """One row per question with its headline metrics."""
        if not self.results:
            raise ValueError("No models evaluated yet.")

        rows = []
        for key, result in self.results.items():
            row = {'question': key, 'task': result['task'], 'status': result['status']}
            for name, value in result['metrics'].items():
                if isinstance(value, Rate):
                    row[name] = value.value
                    if not value.is_defined:
                        row[f'{name}_note'] = value.reason
                else:
                    row[name] = value
            if result['status'] != 'ok':
                row['error_kind'] = result['error_kind']
                row['error'] = result['error']
            rows.append(row)
        return pd.DataFrame(rows)

    def print_comparison_summary(self) -> None:
        df = self.get_comparison_table()

        print("\n" + "="*80)
        print("📊 RESEARCH QUESTION SUMMARY")
        print("="*80)
        for key, result in self.results.items():
            if result['status'] != 'ok':
                print(f"  {key:24s} skipped ({result['error_kind']})")
                continue
            parts = [f"{name}={value}" if not isinstance(value, float) else f"{name}={value:.4f}"
                     for name, value in result['metrics'].items()]
            print(f"  {key:24s} " + ", ".join(parts))

        n_ok = int((df['status'] == 'ok').sum())
        print(f"\n✅ {n_ok}/{len(df)} research questions evaluated")

    def save_results(self, output_dir: Union[str, Path] = OUTPUT_DIR) -> Dict[str, Path]:
        """Write metrics and feature importances as CSV files."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        metrics_path = output_dir / "metrics.csv"
        self.get_comparison_table().to_csv(metrics_path, index=False)

        frames = []
        for key, result in self.results.items():
            importance = result.get('feature_importance')
            if importance is not None:
                frames.append(importance.assign(question=key))
        importance_path = output_dir / "feature_importance.csv"
        if frames:
            pd.concat(frames, ignore_index=True).to_csv(importance_path, index=False)
        else:
            pd.DataFrame(columns=['feature', 'importance', 'question']).to_csv(importance_path, index=False)

        print(f"✅ Saved metrics to {metrics_path}")
        print(f"✅ Saved feature importances to {importance_path}")
        return {'metrics': metrics_path, 'feature_importance': importance_path}
