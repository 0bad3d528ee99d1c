from __future__ import annotations

from typing import Any, Iterator, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import ConfigurationError, DimensionMismatch, check_positive_int


class Dataset:
    """Ordered, fixed-length sequence of points of fixed dimension.

    The underlying ``(N, D)`` float array is read-only; every transformation
    returns a new Dataset.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Any) -> None:
        arr = np.array(data, dtype=float, copy=True)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2:
            raise DimensionMismatch(f"Dataset expects 1-D or 2-D input, got {arr.ndim}-D")
        arr.setflags(write=False)
        self._data = arr

    def __len__(self) -> int:
        return int(self._data.shape[0])

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self._data)

    def __getitem__(self, item: Any) -> Any:
        return self._data[item]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dataset):
            return NotImplemented
        return self._data.shape == other._data.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Dataset(N={len(self)}, dim={self.dim})"

    @property
    def dim(self) -> int:
        return int(self._data.shape[1])

    def to_numpy(self) -> np.ndarray:
        return self._data

    def column(self, j: int) -> np.ndarray:
        return self._data[:, j]

    def columns(self) -> List[np.ndarray]:
        return [self._data[:, j] for j in range(self.dim)]

    def head(self, n: int) -> "Dataset":
        return Dataset(self._data[: int(n)])


def as_dataset(x: Any) -> Dataset:
    """Coerce a scalar series, a point sequence or a DataFrame into a Dataset."""
    if isinstance(x, Dataset):
        return x
    if isinstance(x, (pd.DataFrame, pd.Series)):
        x = x.to_numpy(dtype=float)
    arr = np.asarray(x, dtype=float)
    if arr.ndim == 0 or arr.ndim > 2:
        raise DimensionMismatch(f"Cannot build a Dataset from {arr.ndim}-D input")
    if arr.shape[0] == 0:
        raise DimensionMismatch("Cannot build a Dataset from empty input")
    return Dataset(arr)


def hstack(*datasets: Any) -> Dataset:
    """Joint space of several equally long datasets."""
    ds = [as_dataset(d) for d in datasets]
    lengths = {len(d) for d in ds}
    if len(lengths) != 1:
        raise DimensionMismatch(f"Joint space needs equal lengths, got {sorted(lengths)}")
    return Dataset(np.hstack([d.to_numpy() for d in ds]))


def align(*inputs: Any) -> Tuple[Dataset, ...]:
    """Truncate every input to its first ``N = min(len)`` points.

    Truncation is deterministic and never pads: align([1..110], [1..90])
    yields the first 90 points of each input.
    """
    if not inputs:
        return ()
    ds = [as_dataset(x) for x in inputs]
    n = min(len(d) for d in ds)
    return tuple(d if len(d) == n else d.head(n) for d in ds)


def check_equal_length(*datasets: Dataset) -> int:
    lengths = [len(d) for d in datasets]
    if len(set(lengths)) != 1:
        raise DimensionMismatch(f"Inputs must have equal length, got {lengths}")
    return lengths[0]


def embed(x: Any, d: int, tau: int = 1, *, min_length: int = 1) -> Dataset:
    """Delay embedding (x(t), x(t+tau), ..., x(t+(d-1)tau)) of a scalar series."""
    d = check_positive_int("d", d)
    tau = check_positive_int("tau", tau)
    arr = np.asarray(x, dtype=float)
    if arr.ndim != 1:
        raise DimensionMismatch("embed expects a scalar series")
    n = arr.size - (d - 1) * tau
    if n < max(1, int(min_length)):
        raise DimensionMismatch(
            f"Series of length {arr.size} too short for d={d}, tau={tau} "
            f"(needs at least {(d - 1) * tau + max(1, int(min_length))} points)"
        )
    return Dataset(np.column_stack([arr[j * tau : j * tau + n] for j in range(d)]))


def genembed(x: Any, lags: Sequence[int], *, min_length: int = 1) -> Dataset:
    """Generalized embedding: point t holds x(t + lag) for every lag.

    Only the t for which every lag stays inside the series are kept.
    """
    lags = [int(v) for v in lags]
    if not lags:
        raise ConfigurationError("genembed needs at least one lag")
    arr = np.asarray(x, dtype=float)
    if arr.ndim != 1:
        raise DimensionMismatch("genembed expects a scalar series")
    lo = -min(min(lags), 0)
    hi = max(max(lags), 0)
    n = arr.size - lo - hi
    if n < max(1, int(min_length)):
        raise DimensionMismatch(f"Series of length {arr.size} too short for lags {lags}")
    return Dataset(np.column_stack([arr[lo + lag : lo + lag + n] for lag in lags]))


def variables_from(x: Any) -> Tuple[List[np.ndarray], List[str]]:
    """Split input into scalar variables and their names.

    Accepts a DataFrame (one variable per column), a 2-D array or Dataset
    (one variable per column) or a sequence of scalar series.
    """
    if isinstance(x, pd.DataFrame):
        names = [str(c) for c in x.columns]
        return [x[c].to_numpy(dtype=float) for c in x.columns], names
    if isinstance(x, Dataset):
        cols = [np.asarray(c) for c in x.columns()]
        return cols, [f"x{j}" for j in range(len(cols))]
    if isinstance(x, np.ndarray) and x.ndim == 2:
        cols = [x[:, j].astype(float) for j in range(x.shape[1])]
        return cols, [f"x{j}" for j in range(len(cols))]
    cols = []
    for v in x:
        arr = np.asarray(v.to_numpy() if isinstance(v, pd.Series) else v, dtype=float)
        if arr.ndim != 1:
            raise DimensionMismatch("Each variable must be a scalar series")
        cols.append(arr)
    return cols, [f"x{j}" for j in range(len(cols))]
