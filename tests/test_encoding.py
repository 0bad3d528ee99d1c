import itertools

import numpy as np
import pytest

from infocausal.encoding import (
    FixedRectangularBinning,
    OrdinalPatternEncoding,
    RectangularBinning,
    UniqueElementsEncoding,
    encode_columns,
    encode_points,
    joint_codes,
)
from infocausal.errors import ConfigurationError, DimensionMismatch
from infocausal.measures import CMIShannon, MIShannon, convert_logunit


def _make_points(n: int = 300, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.normal(size=(n, 2))


def test_rectangular_binning_decode_is_idempotent():
    x = _make_points()
    enc = RectangularBinning(4).fit(x)
    codes = enc.encode(x)
    assert codes.min() == 0 and codes.max() == 3
    assert np.array_equal(enc.encode(enc.decode(codes)), codes)


def test_fixed_binning_clips_out_of_range():
    enc = FixedRectangularBinning(0.0, 1.0, 4).fit(np.zeros((1, 1)))
    codes = enc.encode(np.array([-3.0, 0.1, 0.6, 0.99, 7.0]))
    assert codes[:, 0].tolist() == [0, 0, 2, 3, 3]
    with pytest.raises(DimensionMismatch):
        enc.encode(np.zeros((3, 2)))


def test_ordinal_patterns_are_a_bijection():
    enc = OrdinalPatternEncoding(3)
    perms = np.array(list(itertools.permutations([1.0, 2.0, 3.0])))
    codes = enc.encode(perms)
    assert sorted(codes.tolist()) == list(range(enc.n_symbols))
    assert enc.encode([[1.0, 2.0, 3.0]])[0] == 0


def test_ordinal_patterns_reject_multivariate_series():
    with pytest.raises(DimensionMismatch):
        OrdinalPatternEncoding(3).encode_series(np.zeros((20, 2)))
    with pytest.raises(DimensionMismatch):
        OrdinalPatternEncoding(3).encode(np.zeros((4, 2)))


def test_unique_elements_and_joint_codes():
    codes = UniqueElementsEncoding().encode(np.array([[1, 2], [0, 0], [1, 2]]))
    assert codes[0] == codes[2] != codes[1]
    j = joint_codes([0, 0, 1, 1], [0, 1, 0, 1])
    assert len(set(j.tolist())) == 4


def test_encode_points_count_mismatch():
    x = _make_points(20)
    enc = RectangularBinning(2).fit(x)
    with pytest.raises(ConfigurationError):
        encode_points([enc, enc, enc], x, x)
    a, b = encode_points(UniqueElementsEncoding(), x, x)
    assert np.array_equal(a, b)


def test_measure_validation_and_units():
    with pytest.raises(ConfigurationError):
        MIShannon(base=1)
    with pytest.raises(ConfigurationError):
        CMIShannon(definition="h3")
    assert convert_logunit(1.0, 2.0, np.e) == pytest.approx(np.log(2.0))


def test_binnings_encode_directly_and_through_encode_points():
    x = _make_points(40)
    (codes,) = encode_points(RectangularBinning(3), x)
    assert np.array_equal(codes, RectangularBinning(3).encode(x))
    assert np.array_equal(codes, RectangularBinning(3).fit(x).encode(x))
    centres = RectangularBinning(3).decode(codes, x)
    assert np.array_equal(RectangularBinning(3).fit(x).encode(centres), codes)

    fixed = FixedRectangularBinning(0.0, 1.0, 4)
    codes = fixed.encode(np.array([0.1, 0.3, 0.9]))
    assert codes[:, 0].tolist() == [0, 1, 3]
    assert np.allclose(fixed.decode(codes)[:, 0], [0.125, 0.375, 0.875])


def test_shared_encoding_fitted_on_all_datasets():
    a, b = encode_points(UniqueElementsEncoding(), [1.0, 2.0], [2.0, 3.0])
    assert a.tolist() == [0, 1]
    assert b.tolist() == [1, 2]
    fitted = UniqueElementsEncoding().fit([1.0, 2.0])
    with pytest.raises(ConfigurationError):
        fitted.encode([2.0, 3.0])
    assert fitted.decode(fitted.encode([2.0, 1.0]))[:, 0].tolist() == [2.0, 1.0]


def test_encode_columns_per_variable():
    y = _make_points(50)
    (whole,) = encode_columns(RectangularBinning(4), y)
    first, second = encode_columns(RectangularBinning(4), y[:, 0], y[:, 1])
    assert whole.shape == (50, 2) and whole.dtype == np.int64
    assert np.array_equal(np.column_stack([first, second]), whole)
    assert np.array_equal(whole[:, 0], RectangularBinning(4).encode(y[:, 0])[:, 0])

    (ordinal,) = encode_columns(OrdinalPatternEncoding(3, tau=2), y)
    assert ordinal.shape == (46, 2)
    assert np.array_equal(ordinal[:, 1], OrdinalPatternEncoding(3, tau=2).encode_series(y[:, 1]))
