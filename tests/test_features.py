"""
Unit tests for categorical domains and the feature encoder.
"""
import numpy as np
import pandas as pd
import pytest

from street_trees.config import CONDITION_LEVELS
from street_trees.exceptions import LevelMismatch, MalformedInput, SchemaMismatch
from street_trees.features import CategoricalDomain, FeatureEncoder, infer_domains
from street_trees.preprocessing import CONDITION_DTYPE


@pytest.fixture
def mixed_frame() -> pd.DataFrame:
    return pd.DataFrame({
        'height': [10.0, 20.0, 30.0, 40.0],
        'growth_space_type': ['Open', 'Well/Pit', 'Open', 'Tree Lawn'],
        'condition': pd.Series(['Good', 'Poor', 'Excellent', 'Good'], dtype=CONDITION_DTYPE),
    })


class TestCategoricalDomain:

    def test_from_series_uses_sorted_levels(self):
        domain = CategoricalDomain.from_series(pd.Series(['b', 'a', 'c', 'a'], name='x'))

        assert domain.levels == ('a', 'b', 'c')
        assert not domain.ordered
        assert domain.name == 'x'

    def test_from_series_keeps_declared_order(self, mixed_frame):
        domain = CategoricalDomain.from_series(mixed_frame['condition'])

        assert domain.levels == tuple(CONDITION_LEVELS)
        assert domain.ordered

    def test_codes_follow_level_order(self, mixed_frame):
        domain = CategoricalDomain.from_series(mixed_frame['condition'])

        codes = domain.codes(mixed_frame['condition'])

        assert codes.tolist() == [4, 2, 6, 4]

    def test_unknown_level_raises(self):
        domain = CategoricalDomain('growth_space_type', ('Open', 'Well/Pit'))

        with pytest.raises(LevelMismatch) as exc_info:
            domain.check(pd.Series(['Open', 'Median']))
        assert exc_info.value.column == 'growth_space_type'
        assert exc_info.value.unknown_levels == ['Median']

    def test_decode_round_trips_codes(self):
        domain = CategoricalDomain('land_use', ('Industrial', 'Residential'))

        assert domain.decode([1, 0, 1]).tolist() == ['Residential', 'Industrial', 'Residential']

    def test_restrict_to_keeps_canonical_order(self):
        domain = CategoricalDomain('c', ('x', 'y', 'z'), ordered=True)

        restricted = domain.restrict_to(['z', 'x'])

        assert restricted.levels == ('x', 'z')
        assert restricted.ordered

    def test_one_hot_columns_in_level_order(self):
        domain = CategoricalDomain('g', ('b', 'a'))

        encoded = domain.one_hot(pd.Series(['a', 'b', 'a']))

        assert list(encoded.columns) == ['g=b', 'g=a']
        assert encoded['g=a'].tolist() == [1, 0, 1]

    def test_missing_value_raises(self):
        domain = CategoricalDomain('growth_space_type', ('Open', 'Well/Pit'))

        with pytest.raises(MalformedInput, match='growth_space_type'):
            domain.check(pd.Series(['Open', None]))

    def test_missing_value_is_not_encoded_as_all_zero(self):
        domain = CategoricalDomain('g', ('a', 'b'))

        with pytest.raises(MalformedInput):
            domain.one_hot(pd.Series(['a', np.nan]))

    def test_missing_ordered_value_raises(self, mixed_frame):
        domain = CategoricalDomain.from_series(mixed_frame['condition'])
        with_missing = pd.Series(['Good', np.nan], dtype=CONDITION_DTYPE)

        with pytest.raises(MalformedInput):
            domain.codes(with_missing)

    def test_integer_levels_round_trip(self):
        domain = CategoricalDomain('overhead_numeric', (0, 1))

        codes = domain.codes(pd.Series([1, 0, 1]))

        assert codes.tolist() == [1, 0, 1]
        assert domain.decode(codes).tolist() == [1, 0, 1]

    def test_empty_series(self):
        domain = CategoricalDomain('g', ('a', 'b'))
        empty = pd.Series([], dtype=object)

        assert domain.codes(empty).tolist() == []
        assert list(domain.one_hot(empty).columns) == ['g=a', 'g=b']
        assert len(domain.decode([])) == 0


class TestFeatureEncoder:

    def test_encoded_layout(self, mixed_frame):
        encoder = FeatureEncoder(['height', 'growth_space_type', 'condition']).fit(mixed_frame)

        assert encoder.encoded_columns == [
            'height',
            'growth_space_type=Open', 'growth_space_type=Tree Lawn', 'growth_space_type=Well/Pit',
            'condition',
        ]
        assert encoder.numeric_features == ['height']
        assert encoder.source_feature['growth_space_type=Open'] == 'growth_space_type'

    def test_prediction_rows_get_training_layout(self, mixed_frame):
        encoder = FeatureEncoder(['height', 'growth_space_type', 'condition']).fit(mixed_frame)
        holdout = mixed_frame.iloc[[1]]

        X = encoder.transform(holdout)

        assert list(X.columns) == encoder.encoded_columns
        assert X.iloc[0].tolist() == [20.0, 0, 0, 1, CONDITION_LEVELS.index('Poor')]

    def test_unseen_level_at_prediction_raises(self, mixed_frame):
        encoder = FeatureEncoder(['growth_space_type']).fit(mixed_frame)
        new_rows = pd.DataFrame({'growth_space_type': ['Restricted']})

        with pytest.raises(LevelMismatch):
            encoder.transform(new_rows)

    def test_missing_value_at_prediction_raises(self, mixed_frame):
        encoder = FeatureEncoder(['height', 'growth_space_type', 'condition']).fit(mixed_frame)
        new_rows = mixed_frame.copy()
        new_rows['growth_space_type'] = ['Open', None, 'Open', 'Open']

        with pytest.raises(MalformedInput):
            encoder.transform(new_rows)

    def test_fixed_domain_allows_levels_absent_from_training(self, mixed_frame):
        domain = CategoricalDomain('growth_space_type', ('Open', 'Restricted', 'Tree Lawn', 'Well/Pit'))
        encoder = FeatureEncoder(['growth_space_type'], domains={'growth_space_type': domain}).fit(mixed_frame)

        X = encoder.transform(pd.DataFrame({'growth_space_type': ['Restricted']}))

        assert X.iloc[0].tolist() == [0, 1, 0, 0]

    def test_missing_feature_column_raises(self, mixed_frame):
        encoder = FeatureEncoder(['height', 'width'])

        with pytest.raises(SchemaMismatch):
            encoder.fit(mixed_frame)

    def test_transform_before_fit_raises(self, mixed_frame):
        with pytest.raises(ValueError):
            FeatureEncoder(['height']).transform(mixed_frame)

    def test_output_is_numeric(self, mixed_frame):
        X = FeatureEncoder(['height', 'growth_space_type', 'condition']).fit_transform(mixed_frame)

        assert all(np.issubdtype(dtype, np.number) for dtype in X.dtypes)


def test_infer_domains_covers_categorical_columns_only(cleaned_trees):
    domains = infer_domains(cleaned_trees)

    assert 'growth_space_type' in domains
    assert 'condition' in domains and domains['condition'].ordered
    assert 'height' not in domains
    assert 'overhead_numeric' not in domains
