"""Tests for texel accumulators and accumulator lightmaps.

Validates round-robin stream assignment, the resampling confidence
interval, the error estimate, and merge associativity / commutativity.
"""

from __future__ import annotations

import numpy as np
import pytest

from bake_engine.accumulator import Accumulator, Lightmap
from bake_engine.constants import NUM_RESAMPLE


def _acc_from(samples: list[float]) -> Accumulator:
    acc = Accumulator()
    for s in samples:
        acc.add(np.full(3, s))
    return acc


def _merged(a: Accumulator, b: Accumulator) -> Accumulator:
    out = a.copy()
    out.add_other(b)
    return out


# ===================================================================
# SINGLE TEXEL
# ===================================================================


class TestAccumulator:
    """Statistics of one texel."""

    def test_empty_has_no_data(self) -> None:
        acc = Accumulator()
        assert acc.num_samples() == 0
        assert acc.avg() is None
        assert acc.confidence_interval() is None
        assert acc.error() is None

    def test_round_robin_streams(self) -> None:
        """Stream counts never differ by more than one."""
        acc = Accumulator()
        for i in range(1, 11):
            acc.add(np.ones(3))
            assert acc.counts.max() - acc.counts.min() <= 1
            assert acc.cursor == i % NUM_RESAMPLE
        assert acc.num_samples() == 10

    def test_avg(self) -> None:
        acc = _acc_from([1.0, 2.0, 3.0, 6.0])
        np.testing.assert_allclose(acc.avg(), np.full(3, 3.0))

    def test_interval_needs_every_stream(self) -> None:
        acc = _acc_from([1.0, 2.0])
        assert acc.confidence_interval() is None
        assert acc.error() is None

        acc.add(np.full(3, 3.0))
        lo, hi = acc.confidence_interval()
        np.testing.assert_allclose(lo, np.full(3, 1.0))
        np.testing.assert_allclose(hi, np.full(3, 3.0))

    def test_constant_samples_have_zero_error(self) -> None:
        acc = _acc_from([0.7] * 9)
        assert acc.error() == pytest.approx(0.0)

    def test_error_grows_with_spread(self) -> None:
        narrow = _acc_from([0.4, 0.5, 0.6])
        wide = _acc_from([0.1, 0.5, 0.9])
        assert wide.error() > narrow.error() > 0.0

    def test_copy_is_independent(self) -> None:
        acc = _acc_from([1.0])
        dup = acc.copy()
        dup.add(np.ones(3))
        assert acc.num_samples() == 1
        assert dup.num_samples() == 2


# ===================================================================
# MERGE PROPERTIES
# ===================================================================


class TestMerge:
    """``add_other`` is associative and commutative in samples and averages."""

    @pytest.fixture
    def abc(self) -> tuple[Accumulator, Accumulator, Accumulator]:
        return (
            _acc_from([0.1, 0.4, 0.2, 0.9]),
            _acc_from([1.5, 0.3]),
            _acc_from([0.0, 0.0, 0.6, 0.8, 0.25]),
        )

    def test_commutative(self, abc) -> None:
        a, b, _ = abc
        ab = _merged(a, b)
        ba = _merged(b, a)
        assert ab.num_samples() == ba.num_samples()
        np.testing.assert_allclose(ab.avg(), ba.avg())

    def test_associative(self, abc) -> None:
        a, b, c = abc
        left = _merged(_merged(a, b), c)
        right = _merged(a, _merged(b, c))
        assert left.num_samples() == right.num_samples()
        np.testing.assert_allclose(left.avg(), right.avg())

    def test_merge_with_empty_is_identity(self, abc) -> None:
        a, _, _ = abc
        merged = _merged(a, Accumulator())
        np.testing.assert_array_equal(merged.partial_sums, a.partial_sums)
        np.testing.assert_array_equal(merged.counts, a.counts)

    def test_cursor_combined_modulo(self) -> None:
        a = _acc_from([1.0, 1.0])          # cursor 2
        b = _acc_from([1.0, 1.0, 1.0, 1.0])  # cursor 1
        assert _merged(a, b).cursor == (2 + 1) % NUM_RESAMPLE


# ===================================================================
# LIGHTMAP GRID
# ===================================================================


class TestLightmap:
    """Dense accumulator grids."""

    def test_shape_and_indexing(self) -> None:
        lm = Lightmap((4, 2))
        assert lm.size == (4, 2)
        assert lm.num_samples().shape == (2, 4)
        lm.add(3, 1, np.ones(3))
        assert lm.num_samples()[1, 3] == 1
        assert lm.texel(3, 1).num_samples() == 1

    def test_texel_round_trip(self) -> None:
        lm = Lightmap(3)
        acc = lm.texel(1, 2)
        acc.add(np.full(3, 0.5))
        assert lm.num_samples()[2, 1] == 0, "texel() returns a copy"
        lm.set_texel(1, 2, acc)
        np.testing.assert_allclose(lm.avg()[2, 1], np.full(3, 0.5))

    def test_avg_fill(self) -> None:
        lm = Lightmap(2)
        lm.add(0, 0, np.full(3, 2.0))
        assert np.all(np.isnan(lm.avg()[1, 1]))
        np.testing.assert_array_equal(lm.avg(fill=0.0)[1, 1], np.zeros(3))
        np.testing.assert_allclose(lm.avg()[0, 0], np.full(3, 2.0))

    def test_error_matches_texel(self) -> None:
        lm = Lightmap(2)
        for s in (0.2, 0.5, 0.9, 0.4):
            lm.add(1, 0, np.full(3, s))
        err = lm.error()
        assert np.isnan(err[0, 0])
        assert err[0, 1] == pytest.approx(lm.texel(1, 0).error())

    def test_add_other_matches_texel_merge(self) -> None:
        a, b = Lightmap(2), Lightmap(2)
        a.add(0, 0, np.full(3, 1.0))
        b.add(0, 0, np.full(3, 3.0))
        b.add(1, 1, np.full(3, 5.0))
        a.add_other(b)
        assert a.num_samples().tolist() == [[2, 0], [0, 1]]
        np.testing.assert_allclose(a.avg()[0, 0], np.full(3, 2.0))

    def test_add_other_size_mismatch(self) -> None:
        with pytest.raises(ValueError, match="size mismatch"):
            Lightmap(2).add_other(Lightmap(4))
