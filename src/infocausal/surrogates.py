"""Surrogate data generators used under the null hypothesis of independence.

Every generator takes a ``numpy.random.Generator`` and returns a new
:class:`Dataset`; inputs are never modified.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

import numpy as np

from .datasets import Dataset, as_dataset, check_equal_length
from .errors import ConfigurationError, DimensionMismatch, check_positive_int
from .neighbors import NeighborIndex, knn


def random_permutation(x: Any, rng: np.random.Generator) -> Dataset:
    """Random reordering of the points of ``x``."""
    ds = as_dataset(x)
    return Dataset(ds.to_numpy()[rng.permutation(len(ds))])


def random_shift(x: Any, rng: np.random.Generator) -> Dataset:
    """Circular shift of ``x`` by a random offset in ``[1, N - 1]``."""
    ds = as_dataset(x)
    n = len(ds)
    if n < 2:
        raise DimensionMismatch("random_shift needs at least two points")
    return Dataset(np.roll(ds.to_numpy(), int(rng.integers(1, n)), axis=0))


def phase_randomize(x: Any, rng: np.random.Generator) -> Dataset:
    """Fourier surrogate: random phases, same amplitude spectrum, column by column.

    The zero-frequency term (and the Nyquist term for even N) keep their
    phase so the surrogate stays real with the original mean.
    """
    ds = as_dataset(x)
    n = len(ds)
    if n < 3:
        raise DimensionMismatch("phase_randomize needs at least three points")
    cols = []
    for col in ds.columns():
        coeffs = np.fft.rfft(col)
        phases = rng.uniform(0.0, 2.0 * np.pi, size=coeffs.size)
        new = np.abs(coeffs) * np.exp(1j * phases)
        new[0] = coeffs[0]
        if n % 2 == 0:
            new[-1] = coeffs[-1]
        cols.append(np.fft.irfft(new, n=n))
    return Dataset(np.column_stack(cols))


SURROGATES: Dict[str, Callable[[Any, np.random.Generator], Dataset]] = {
    "permutation": random_permutation,
    "shift": random_shift,
    "phase": phase_randomize,
}


def get_surrogate(name: str) -> Callable[[Any, np.random.Generator], Dataset]:
    if name not in SURROGATES:
        raise ConfigurationError(f"Unknown surrogate: {name!r} (expected one of {sorted(SURROGATES)})")
    return SURROGATES[name]


def local_neighbors(z: Any, kperm: int, theiler: int = 0) -> np.ndarray:
    """Indices of the ``kperm`` nearest neighbours of every point of ``z`` (Chebyshev)."""
    kperm = check_positive_int("kperm", kperm)
    _, idx = knn(NeighborIndex(z, "chebyshev"), kperm, theiler)
    return idx


def restricted_permutation(neighbors: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Runge (2018) restricted permutation from a neighbour table.

    Points are visited in random order; each takes the first not yet used
    index among its shuffled neighbours, or the last one tried when all are
    used. The result may therefore contain repeated indices.
    """
    n, kperm = neighbors.shape
    shuffled = rng.permuted(neighbors, axis=1)
    used = np.zeros(n, dtype=bool)
    perm = np.empty(n, dtype=np.int64)
    for i in rng.permutation(n):
        row = shuffled[i]
        m = 0
        use = row[m]
        while used[use] and m < kperm - 1:
            m += 1
            use = row[m]
        perm[i] = use
        used[use] = True
    return perm


def local_permutation(y: Any, z: Any, kperm: int, theiler: int, rng: np.random.Generator) -> Dataset:
    """Permute ``y`` only among points that are close in ``z``."""
    Y, Z = as_dataset(y), as_dataset(z)
    check_equal_length(Y, Z)
    perm = restricted_permutation(local_neighbors(Z, kperm, theiler), rng)
    return Dataset(Y.to_numpy()[perm])


__all__ = [
    "random_permutation",
    "random_shift",
    "phase_randomize",
    "SURROGATES",
    "get_surrogate",
    "local_neighbors",
    "restricted_permutation",
    "local_permutation",
]
