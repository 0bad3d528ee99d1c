from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence, Tuple

import numpy as np

from .datasets import Dataset, as_dataset, embed
from .errors import ConfigurationError, DimensionMismatch, check_positive_int


@dataclass(frozen=True)
class RectangularBinEncoding:
    """Fitted rectangular grid: per-dimension origin, bin width and bin count.

    Values are assigned to ``floor((x - mini) / width)``, clipped to the
    grid, so the column maximum falls into the last bin.
    """

    mini: np.ndarray
    widths: np.ndarray
    n_bins: int

    @property
    def dim(self) -> int:
        return int(self.mini.size)

    def encode(self, x: Any) -> np.ndarray:
        ds = as_dataset(x)
        if ds.dim != self.dim:
            raise DimensionMismatch(f"Encoding fitted on {self.dim} dimensions, got {ds.dim}")
        codes = np.floor((ds.to_numpy() - self.mini) / self.widths).astype(np.int64)
        return np.clip(codes, 0, self.n_bins - 1)

    def decode(self, codes: Any) -> np.ndarray:
        """Bin centres of integer bin codes."""
        c = np.asarray(codes, dtype=float)
        if c.ndim == 1:
            c = c.reshape(-1, 1)
        return self.mini + (c + 0.5) * self.widths


@dataclass(frozen=True)
class RectangularBinning:
    """``n_bins`` equal-width bins per dimension spanning the data range."""

    n_bins: int = 3

    def __post_init__(self) -> None:
        check_positive_int("n_bins", self.n_bins)

    def fit(self, x: Any) -> RectangularBinEncoding:
        arr = as_dataset(x).to_numpy()
        mini = arr.min(axis=0)
        span = arr.max(axis=0) - mini
        widths = np.where(span > 0, span / self.n_bins, 1.0)
        return RectangularBinEncoding(mini=mini, widths=widths, n_bins=int(self.n_bins))

    def encode(self, x: Any) -> np.ndarray:
        return self.fit(x).encode(x)

    def decode(self, codes: Any, x: Any) -> np.ndarray:
        """Bin centres of ``codes`` on the grid fitted to ``x``."""
        return self.fit(x).decode(codes)


@dataclass(frozen=True)
class FixedRectangularBinning:
    """``n_bins`` equal-width bins on ``[low, high]`` in every dimension.

    Values outside the range are clipped to the first / last bin.
    """

    low: float = 0.0
    high: float = 1.0
    n_bins: int = 3

    def __post_init__(self) -> None:
        check_positive_int("n_bins", self.n_bins)
        if not float(self.high) > float(self.low):
            raise ConfigurationError(f"high must exceed low, got [{self.low}, {self.high}]")

    def fit(self, x: Any) -> RectangularBinEncoding:
        dim = as_dataset(x).dim
        width = (float(self.high) - float(self.low)) / self.n_bins
        return RectangularBinEncoding(
            mini=np.full(dim, float(self.low)),
            widths=np.full(dim, width),
            n_bins=int(self.n_bins),
        )

    def encode(self, x: Any) -> np.ndarray:
        return self.fit(x).encode(x)

    def decode(self, codes: Any) -> np.ndarray:
        c = np.asarray(codes, dtype=float)
        return self.fit(c.reshape(-1, 1) if c.ndim == 1 else c).decode(c)


@dataclass(frozen=True)
class OrdinalPatternEncoding:
    """Maps a length-``m`` vector to the index (0..m!-1) of its ordinal pattern.

    ``tau`` is the delay used when a scalar series is symbolized.
    """

    m: int = 3
    tau: int = 1

    def __post_init__(self) -> None:
        check_positive_int("m", self.m, minimum=2)
        check_positive_int("tau", self.tau)

    @property
    def n_symbols(self) -> int:
        return math.factorial(self.m)

    def encode(self, points: Any) -> np.ndarray:
        arr = np.atleast_2d(np.asarray(points.to_numpy() if isinstance(points, Dataset) else points, dtype=float))
        if arr.shape[1] != self.m:
            raise DimensionMismatch(f"Ordinal patterns of length {self.m} cannot encode points of length {arr.shape[1]}")
        perms = np.argsort(arr, axis=1, kind="stable")
        codes = np.zeros(arr.shape[0], dtype=np.int64)
        for i in range(self.m - 1):
            smaller = (perms[:, i + 1 :] < perms[:, [i]]).sum(axis=1)
            codes += smaller * math.factorial(self.m - 1 - i)
        return codes

    def encode_series(self, x: Any) -> np.ndarray:
        """Symbolize a scalar series through its delay embedding."""
        ds = as_dataset(x)
        if ds.dim != 1:
            raise DimensionMismatch("Ordinal pattern symbolization needs a scalar series")
        return self.encode(embed(ds.column(0), self.m, self.tau))


def _rows(points: Any) -> np.ndarray:
    arr = np.asarray(points.to_numpy() if isinstance(points, Dataset) else points)
    return arr.reshape(-1, 1) if arr.ndim == 1 else arr


@dataclass(frozen=True)
class UniqueElementsMap:
    """Fitted unique-elements encoding: the sorted distinct reference points."""

    elements: Tuple[Tuple[float, ...], ...]

    @property
    def dim(self) -> int:
        return len(self.elements[0])

    def encode(self, points: Any) -> np.ndarray:
        arr = _rows(points)
        if arr.shape[1] != self.dim:
            raise DimensionMismatch(f"Encoding fitted on {self.dim} dimensions, got {arr.shape[1]}")
        ref = np.asarray(self.elements)
        _, inverse = np.unique(np.vstack([ref, arr]), axis=0, return_inverse=True)
        inverse = np.asarray(inverse).reshape(-1)
        lookup = np.full(int(inverse.max()) + 1, -1, dtype=np.int64)
        lookup[inverse[: len(ref)]] = np.arange(len(ref))
        codes = lookup[inverse[len(ref) :]]
        if (codes < 0).any():
            raise ConfigurationError(f"{int((codes < 0).sum())} point(s) not present in the fitted elements")
        return codes

    def decode(self, codes: Any) -> np.ndarray:
        return np.asarray(self.elements)[np.asarray(codes, dtype=np.int64).reshape(-1)]


@dataclass(frozen=True)
class UniqueElementsEncoding:
    """Integer id of every distinct point, in sorted order of the points.

    Fitting fixes the ids on a reference set so that several datasets share
    them; encoding without a fit numbers the distinct points of the input.
    """

    def fit(self, x: Any) -> UniqueElementsMap:
        uniq = np.unique(_rows(x), axis=0)
        return UniqueElementsMap(elements=tuple(tuple(row) for row in uniq.tolist()))

    def encode(self, points: Any) -> np.ndarray:
        return self.fit(points).encode(points)


def _fitted(encoding: Any, ds: Dataset) -> Any:
    fit = getattr(encoding, "fit", None)
    return fit(ds) if callable(fit) else encoding


def encode_points(encodings: Any, *datasets: Any) -> Tuple[np.ndarray, ...]:
    """Encode every point of every dataset with its encoding.

    A single encoding is applied to all datasets; otherwise there must be
    exactly one encoding per dataset. Unfitted encodings (binnings, unique
    elements) are fitted first: a shared one once on all datasets stacked
    together when they have the same dimension, so codes agree across
    datasets, otherwise on each dataset separately.
    """
    data = [as_dataset(d) for d in datasets]
    if not isinstance(encodings, (list, tuple)):
        if data and len({d.dim for d in data}) == 1:
            encodings = _fitted(encodings, Dataset(np.vstack([d.to_numpy() for d in data])))
        encodings = [encodings] * len(data)
    if len(encodings) != len(data):
        raise ConfigurationError(f"Got {len(encodings)} encodings for {len(data)} datasets")
    return tuple(_fitted(enc, d).encode(d) for enc, d in zip(encodings, data))


def _encode_column(encoder: Any, col: np.ndarray) -> np.ndarray:
    if isinstance(encoder, OrdinalPatternEncoding):
        return encoder.encode_series(col)
    ds = Dataset(col)
    return np.asarray(_fitted(encoder, ds).encode(ds)).reshape(-1)


def encode_columns(encoder: Any, *datasets: Any) -> Tuple[np.ndarray, ...]:
    """Encode each column of each dataset independently.

    Returns one integer matrix per dataset, one column of codes per input
    column. Ordinal patterns symbolize every column as a scalar series, so
    their codes are ``(m - 1) * tau`` rows shorter than the input.
    """
    out = []
    for d in datasets:
        ds = as_dataset(d)
        out.append(np.column_stack([_encode_column(encoder, c) for c in ds.columns()]).astype(np.int64))
    return tuple(out)


def joint_codes(*columns: Sequence[int]) -> np.ndarray:
    """Integer id of each joint symbol formed by the given code columns."""
    stacked = np.column_stack([np.asarray(c).reshape(-1) for c in columns])
    _, inverse = np.unique(stacked, axis=0, return_inverse=True)
    return np.asarray(inverse, dtype=np.int64).reshape(-1)
