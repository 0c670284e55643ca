"""Tests for the hole filter and the superblock box filter."""

from __future__ import annotations

import itertools

import numpy as np

from bake_engine.accumulator import Lightmap
from baking.filters import hole_filter, hole_filter_all, superblock_filter


def _positions(lm: Lightmap):
    width, height = lm.size
    return itertools.product(range(width), range(height))


def _filled(size: int, value: float) -> Lightmap:
    lm = Lightmap(size)
    for x, y in _positions(lm):
        lm.add(x, y, np.full(3, value))
    return lm


def _assert_same(a: Lightmap, b: Lightmap) -> None:
    np.testing.assert_array_equal(a.partial_sums, b.partial_sums)
    np.testing.assert_array_equal(a.counts, b.counts)
    np.testing.assert_array_equal(a.cursor, b.cursor)


class TestHoleFilter:

    def test_fully_populated_unchanged(self) -> None:
        lm = _filled(5, 0.3)
        lm.add(2, 2, np.full(3, 0.9))
        _assert_same(hole_filter(lm), lm)

    def test_isolated_hole_takes_neighbor_merge(self) -> None:
        lm = Lightmap(3)
        for x, y in _positions(lm):
            if (x, y) != (1, 1):
                lm.add(x, y, np.full(3, 0.4))

        out = hole_filter(lm)

        assert out.num_samples()[1, 1] == 8
        np.testing.assert_allclose(out.avg()[1, 1], np.full(3, 0.4))
        # Populated texels are untouched.
        np.testing.assert_array_equal(out.num_samples()[0], [1, 1, 1])

    def test_does_not_mutate_input(self) -> None:
        lm = Lightmap(3)
        lm.add(0, 0, np.ones(3))
        hole_filter(lm)
        assert lm.num_samples().sum() == 1

    def test_fills_one_texel_deep_per_pass(self) -> None:
        lm = Lightmap(5)
        lm.add(0, 0, np.ones(3))

        once = hole_filter(lm)
        assert once.num_samples()[1, 1] > 0
        assert once.num_samples()[2, 2] == 0

        twice = hole_filter(once)
        assert twice.num_samples()[2, 2] > 0
        assert twice.num_samples()[3, 3] == 0

    def test_all_empty_stays_empty(self) -> None:
        out = hole_filter_all({"a": Lightmap(4)})
        assert out["a"].num_samples().sum() == 0


class TestSuperblockFilter:

    def test_uniform_average_preserved(self) -> None:
        out = superblock_filter(_filled(4, 0.6))
        np.testing.assert_allclose(out.avg(), np.full((4, 4, 3), 0.6))

    def test_neighborhood_counts(self) -> None:
        out = superblock_filter(_filled(4, 0.6))
        n = out.num_samples()
        assert n[0, 0] == 4
        assert n[0, 1] == 6
        assert n[1, 1] == 9

    def test_spreads_a_single_sample(self) -> None:
        lm = Lightmap(5)
        lm.add(2, 2, np.full(3, 0.8))
        n = superblock_filter(lm).num_samples()
        assert n[1:4, 1:4].tolist() == [[1, 1, 1]] * 3
        assert n.sum() == 9
