import numpy as np
import pytest

from sprintforest.core.sorted_index import SortedIndex
from sprintforest.errors import InvalidIndexError


def make_values(n_rows: int = 30, n_features: int = 3, seed: int = 5) -> np.ndarray:
    rng = np.random.default_rng(seed)
    # few distinct values so ties are common
    return rng.integers(0, 6, size=(n_rows, n_features)).astype(np.float64)


def assert_sorted(index: SortedIndex) -> None:
    for feature in range(index.n_features):
        rows = index.feature_rows(feature)
        vals = index.values[rows, feature]
        assert np.all(vals[:-1] <= vals[1:])
        same = vals[:-1] == vals[1:]
        assert np.all(rows[:-1][same] <= rows[1:][same])


def test_build_sorts_every_feature_with_row_tiebreak():
    values = make_values()
    index = SortedIndex.build(values)
    assert index.n_occurrences == values.shape[0]
    assert_sorted(index)
    for feature in range(values.shape[1]):
        assert sorted(index.feature_rows(feature).tolist()) == list(range(values.shape[0]))


def test_restrict_keeps_multiplicities_and_order():
    values = make_values()
    index = SortedIndex.build(values)
    sample = np.array([3, 3, 7, 0, 12, 7, 7, 29])
    restricted = index.restrict(sample)
    assert restricted.n_occurrences == sample.size
    assert_sorted(restricted)
    np.testing.assert_array_equal(restricted.rows, np.sort(sample))
    rebuilt = SortedIndex.build(values, sample)
    np.testing.assert_array_equal(restricted.order, rebuilt.order)


def test_restrict_rejects_rows_outside_the_index():
    values = make_values()
    index = SortedIndex.build(values, np.array([1, 2, 3]))
    with pytest.raises(InvalidIndexError):
        index.restrict(np.array([1, 4]))
    with pytest.raises(InvalidIndexError):
        index.restrict(np.array([-1]))
    with pytest.raises(InvalidIndexError):
        index.restrict(np.array([values.shape[0]]))


def test_partition_then_merge_reproduces_parent():
    values = make_values()
    index = SortedIndex.build(values, np.array([0, 0, 4, 5, 5, 8, 11, 17, 23, 23, 23]))
    goes_left = np.zeros(values.shape[0], dtype=bool)
    goes_left[[0, 5, 17]] = True
    left, right = index.partition(goes_left)
    assert left.n_occurrences + right.n_occurrences == index.n_occurrences
    assert set(left.rows.tolist()) == {0, 5, 17}
    assert set(right.rows.tolist()).isdisjoint(left.rows.tolist())
    assert_sorted(left)
    assert_sorted(right)
    merged = left.merge(right)
    np.testing.assert_array_equal(merged.order, index.order)


def test_partition_with_short_predicate_fails():
    values = make_values()
    index = SortedIndex.build(values)
    with pytest.raises(InvalidIndexError):
        index.partition(np.ones(5, dtype=bool))


def test_split_by_threshold_routes_rows():
    values = make_values()
    index = SortedIndex.build(values)
    left, right = index.split(1, 2.5)
    assert np.all(values[left.rows, 1] <= 2.5)
    assert np.all(values[right.rows, 1] > 2.5)
    assert left.n_occurrences + right.n_occurrences == values.shape[0]


def test_merge_requires_shared_values():
    a = SortedIndex.build(make_values(seed=1))
    b = SortedIndex.build(make_values(seed=2))
    with pytest.raises(InvalidIndexError):
        a.merge(b)
