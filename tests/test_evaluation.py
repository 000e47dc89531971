"""
Unit tests for model evaluation.

Tests cover:
- Confusion-matrix level alignment
- Sensitivity / specificity, including undefined rates
- Evaluator results, summary table and CSV export
"""
import pandas as pd
import pytest

from street_trees.evaluation import (
    Rate, ModelEvaluator, aligned_confusion_matrix, classification_rates, rmse,
)
from street_trees.exceptions import InsufficientData
from street_trees.features import infer_domains
from street_trees.models import ModelTrainer
from street_trees.questions import STORMWATER, LAND_USE, OVERHEAD_UTILITIES


# ============================================================
# Confusion Matrix
# ============================================================

class TestAlignedConfusionMatrix:

    def test_unused_domain_level_is_dropped(self):
        y_true = ['a', 'b', 'c', 'a']
        y_pred = ['a', 'b', 'b', 'c']

        cm = aligned_confusion_matrix(y_true, y_pred, level_order=['a', 'b', 'c', 'd'])

        assert list(cm.index) == ['a', 'b', 'c']
        assert list(cm.columns) == ['a', 'b', 'c']
        assert cm.to_numpy().sum() == 4
        assert cm.loc['c', 'b'] == 1
        assert cm.loc['a', 'c'] == 1

    def test_predicted_only_label_is_kept(self):
        cm = aligned_confusion_matrix(['a', 'a', 'b'], ['a', 'z', 'b'])

        assert list(cm.index) == ['a', 'b', 'z']
        assert cm.loc['a', 'z'] == 1
        assert cm.loc['z'].sum() == 0

    def test_canonical_order_is_respected(self):
        cm = aligned_confusion_matrix(['low', 'high'], ['low', 'high'], level_order=['high', 'low'])

        assert list(cm.index) == ['high', 'low']

    def test_integer_labels(self):
        cm = aligned_confusion_matrix([0, 1, 1, 0], [0, 1, 0, 0], level_order=(0, 1))

        assert cm.loc[1, 0] == 1
        assert cm.loc[0, 0] == 2

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            aligned_confusion_matrix(['a'], ['a', 'b'])


# ============================================================
# Rates
# ============================================================

class TestClassificationRates:

    def test_binary_rates(self):
        cm = aligned_confusion_matrix([0, 1, 1, 0], [0, 1, 0, 0], level_order=(0, 1))

        rates = classification_rates(cm, positive=1)

        assert rates['accuracy'].value == pytest.approx(0.75)
        assert rates['sensitivity'].value == pytest.approx(0.5)
        assert rates['specificity'].value == pytest.approx(1.0)

    def test_single_class_holdout_reports_undefined_sensitivity(self):
        y_true = ['Residential'] * 6
        y_pred = ['Residential'] * 4 + ['Industrial'] * 2
        cm = aligned_confusion_matrix(y_true, y_pred, level_order=('Industrial', 'Residential'))

        rates = classification_rates(cm, positive='Industrial')

        assert not rates['sensitivity'].is_defined
        assert rates['sensitivity'].value is None
        assert 'Industrial' in rates['sensitivity'].reason
        assert str(rates['sensitivity']).startswith('undefined')
        assert rates['specificity'].value == pytest.approx(4 / 6)

    def test_positive_only_holdout_reports_undefined_specificity(self):
        cm = aligned_confusion_matrix([1, 1], [1, 0], level_order=(0, 1))

        rates = classification_rates(cm, positive=1)

        assert rates['sensitivity'].value == pytest.approx(0.5)
        assert not rates['specificity'].is_defined

    def test_empty_matrix_is_undefined_not_nan(self):
        rates = classification_rates(aligned_confusion_matrix([], []), positive=1)

        assert all(not rate.is_defined for rate in rates.values())


def test_rate_formatting():
    assert str(Rate(0.5)) == "0.5000"
    assert str(Rate.of(1, 0, "no rows")) == "undefined (no rows)"


def test_rmse():
    assert rmse([1.0, 2.0], [1.0, 4.0]) == pytest.approx(2 ** 0.5)


# ============================================================
# Evaluator
# ============================================================

@pytest.fixture
def fitted(fast_params, cleaned_trees, split_trees):
    train, _ = split_trees
    trainer = ModelTrainer(params=fast_params, domains=infer_domains(cleaned_trees))
    return {
        q.key: trainer.fit(q, train) for q in (STORMWATER, LAND_USE, OVERHEAD_UTILITIES)
    }


class TestModelEvaluator:

    def test_regressor_metrics(self, fitted, split_trees):
        _, holdout = split_trees
        evaluator = ModelEvaluator()

        metrics = evaluator.evaluate(fitted['stormwater_elimination'], holdout)

        assert metrics['oob_rmse'] == fitted['stormwater_elimination'].oob_metrics['oob_rmse']
        assert metrics['holdout_rmse'] >= 0
        assert evaluator.results['stormwater_elimination']['confusion_matrix'] is None

    def test_classifier_metrics(self, fitted, split_trees):
        _, holdout = split_trees
        evaluator = ModelEvaluator(top_k=5)

        metrics = evaluator.evaluate(fitted['land_use'], holdout)

        result = evaluator.results['land_use']
        assert isinstance(metrics['accuracy'], Rate)
        assert metrics['positive_class'] == 'Industrial'
        assert result['confusion_matrix'].to_numpy().sum() == metrics['holdout_rows']
        assert set(result['confusion_matrix'].index) <= {'Industrial', 'Residential'}
        assert len(result['feature_importance']) == 5

    def test_classifier_on_single_class_holdout(self, fitted, split_trees):
        _, holdout = split_trees
        residential_only = holdout[holdout['land_use'] == 'Residential']

        metrics = ModelEvaluator().evaluate(fitted['land_use'], residential_only)

        assert not metrics['sensitivity'].is_defined
        assert metrics['specificity'].is_defined

    def test_classifier_requires_holdout(self, fitted):
        with pytest.raises(ValueError):
            ModelEvaluator().evaluate(fitted['overhead_utilities'])

    def test_comparison_table_and_failures(self, fitted, split_trees):
        _, holdout = split_trees
        evaluator = ModelEvaluator()
        evaluator.evaluate(fitted['stormwater_elimination'], holdout)
        evaluator.evaluate(fitted['overhead_utilities'], holdout)
        evaluator.record_failure('total_air_benefits', InsufficientData("too few rows"))

        table = evaluator.get_comparison_table().set_index('question')

        assert table.loc['stormwater_elimination', 'status'] == 'ok'
        assert table.loc['total_air_benefits', 'status'] == 'skipped'
        assert table.loc['total_air_benefits', 'error_kind'] == 'insufficient_data'
        assert 0.0 <= table.loc['overhead_utilities', 'accuracy'] <= 1.0

    def test_print_report_handles_skips(self, fitted, split_trees, capsys):
        _, holdout = split_trees
        evaluator = ModelEvaluator()
        evaluator.evaluate(fitted['land_use'], holdout)
        evaluator.record_failure('total_air_benefits', InsufficientData("too few rows"))

        evaluator.print_report('land_use')
        evaluator.print_report('total_air_benefits')

        out = capsys.readouterr().out
        assert 'Confusion matrix' in out
        assert 'Skipped (insufficient_data)' in out

    def test_save_results_writes_csvs(self, fitted, split_trees, tmp_path):
        _, holdout = split_trees
        evaluator = ModelEvaluator(top_k=3)
        for model in fitted.values():
            evaluator.evaluate(model, holdout)

        paths = evaluator.save_results(tmp_path)

        metrics = pd.read_csv(paths['metrics'])
        importance = pd.read_csv(paths['feature_importance'])
        assert len(metrics) == 3
        assert len(importance) == 9
        assert set(importance['question']) == set(fitted)

    def test_comparison_table_requires_results(self):
        with pytest.raises(ValueError):
            ModelEvaluator().get_comparison_table()
