"""Unit tests for the fold plan."""

import numpy as np
import pytest

from winprob.modeling.errors import ConfigurationError
from winprob.modeling.folds import assign_folds


class TestAssignFolds:
    """Partition properties."""

    @pytest.mark.parametrize("n,v", [(2, 2), (10, 3), (100, 5), (101, 10), (7, 7), (1000, 9)])
    def test_partition_sizes(self, n, v):
        """Every row gets one fold, V non-empty folds, sizes differ by at most 1."""
        fa = assign_folds(n, v)

        assert fa.folds.shape == (n,)
        assert set(np.unique(fa.folds).tolist()) == set(range(v))
        sizes = fa.sizes()
        assert sum(sizes) == n
        assert min(sizes) >= 1
        assert max(sizes) - min(sizes) <= 1

    def test_contiguous_without_shuffle(self):
        """Unshuffled folds are contiguous blocks in row order."""
        fa = assign_folds(10, 3)

        np.testing.assert_array_equal(fa.folds, [0, 0, 0, 0, 1, 1, 1, 2, 2, 2])

    def test_repeatable(self):
        """Same inputs give identical assignments."""
        a = assign_folds(57, 6)
        b = assign_folds(57, 6)

        np.testing.assert_array_equal(a.folds, b.folds)

    def test_shuffle_is_seeded(self):
        """Shuffled plans depend only on the seed."""
        a = assign_folds(50, 5, shuffle=True, seed=7)
        b = assign_folds(50, 5, shuffle=True, seed=7)

        np.testing.assert_array_equal(a.folds, b.folds)
        assert a.sizes() == [10] * 5

    def test_shuffle_requires_seed(self):
        with pytest.raises(ConfigurationError):
            assign_folds(50, 5, shuffle=True)

    @pytest.mark.parametrize("n,v", [(10, 1), (10, 0), (3, 4)])
    def test_invalid_fold_counts(self, n, v):
        with pytest.raises(ConfigurationError):
            assign_folds(n, v)

    def test_assignment_is_read_only(self):
        fa = assign_folds(10, 2)

        with pytest.raises(ValueError):
            fa.folds[0] = 1

    def test_train_test_indices_are_disjoint(self):
        fa = assign_folds(23, 4)

        for f, tr, te in fa.iter_splits():
            assert np.intersect1d(tr, te).size == 0
            assert tr.size + te.size == 23
            assert np.all(fa.folds[te] == f)
