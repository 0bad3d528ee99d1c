"""Nearest-neighbour queries with Theiler-window exclusion.

All searches go through ``scipy.spatial.cKDTree``. For very small datasets
(``N <= brute_force_max``) a brute-force pairwise-distance path is used,
which gives identical results.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .datasets import as_dataset
from .errors import ConfigurationError, DimensionMismatch, check_positive_int

# Minkowski exponent used by the tree for each metric name.
METRICS: Dict[str, float] = {
    "chebyshev": np.inf,
    "euclidean": 2.0,
    "sqeuclidean": 2.0,
    "cityblock": 1.0,
}

BRUTE_FORCE_MAX = 16


def check_metric(metric: str) -> str:
    if metric not in METRICS:
        raise ConfigurationError(f"Unknown metric: {metric!r} (expected one of {sorted(METRICS)})")
    return metric


def pairwise_rows(a: np.ndarray, b: np.ndarray, metric: str = "chebyshev") -> np.ndarray:
    """Distance between row i of ``a`` and row i of ``b``."""
    diff = np.abs(a - b)
    if metric == "chebyshev":
        return diff.max(axis=1)
    if metric == "cityblock":
        return diff.sum(axis=1)
    sq = (diff**2).sum(axis=1)
    return sq if metric == "sqeuclidean" else np.sqrt(sq)


def pairwise_distances(a: np.ndarray, b: np.ndarray, metric: str = "chebyshev") -> np.ndarray:
    """Distances between every row of ``a`` and every row of ``b``."""
    diff = np.abs(a[:, None, :] - b[None, :, :])
    if metric == "chebyshev":
        return diff.max(axis=2)
    if metric == "cityblock":
        return diff.sum(axis=2)
    sq = (diff**2).sum(axis=2)
    return sq if metric == "sqeuclidean" else np.sqrt(sq)


class NeighborIndex:
    """Spatial index over one dataset under a fixed metric."""

    def __init__(self, data: Any, metric: str = "chebyshev", *, brute_force_max: int = BRUTE_FORCE_MAX) -> None:
        self.metric = check_metric(metric)
        self.points = as_dataset(data).to_numpy()
        self.p = METRICS[metric]
        self.squared = metric == "sqeuclidean"
        self.brute_force = len(self.points) <= int(brute_force_max)
        self._tree = None if self.brute_force else cKDTree(self.points)

    def __len__(self) -> int:
        return int(self.points.shape[0])

    def query(self, points: np.ndarray, m: int) -> Tuple[np.ndarray, np.ndarray]:
        """The ``m`` nearest indexed points of each query point, sorted by distance."""
        points = np.atleast_2d(np.asarray(points, dtype=float))
        if m > len(self):
            raise DimensionMismatch(f"Cannot query {m} neighbours among {len(self)} points")
        if self.brute_force:
            d = pairwise_distances(points, self.points, "euclidean" if self.squared else self.metric)
            idx = np.argsort(d, axis=1, kind="stable")[:, :m]
            dist = np.take_along_axis(d, idx, axis=1)
        else:
            dist, idx = self._tree.query(points, k=m, p=self.p)
            dist = np.asarray(dist, dtype=float).reshape(len(points), m)
            idx = np.asarray(idx, dtype=int).reshape(len(points), m)
        if self.squared:
            dist = dist**2
        return dist, idx

    def ball_counts(self, points: np.ndarray, radii: np.ndarray) -> np.ndarray:
        points = np.atleast_2d(np.asarray(points, dtype=float))
        r = self._tree_radius(radii, len(points))
        if self.brute_force:
            d = pairwise_distances(points, self.points, "euclidean" if self.squared else self.metric)
            return (d <= r[:, None]).sum(axis=1).astype(int)
        return np.asarray(self._tree.query_ball_point(points, r, p=self.p, return_length=True), dtype=int)

    def _tree_radius(self, radii: np.ndarray, n: int) -> np.ndarray:
        r = np.broadcast_to(np.asarray(radii, dtype=float), (n,)).copy()
        if self.squared:
            r = np.sqrt(np.maximum(r, 0.0))
        return r


def _admissible(idx: np.ndarray, rows: np.ndarray, theiler: int) -> np.ndarray:
    return np.abs(idx - rows[:, None]) > theiler


def knn(index: NeighborIndex, k: int, theiler: int = 0) -> Tuple[np.ndarray, np.ndarray]:
    """Batched k-NN of every indexed point against the index itself.

    Neighbours ``j`` with ``|i - j| <= theiler`` are excluded, which removes
    only the point itself when ``theiler == 0``. Returns ``(distances,
    indices)`` of shape ``(N, k)``, sorted by distance.
    """
    k = check_positive_int("k", k)
    theiler = check_positive_int("theiler", theiler, minimum=0)
    n = len(index)
    m = k + 2 * theiler + 1
    if n < m:
        raise DimensionMismatch(f"{n} points cannot provide {k} neighbours outside a Theiler window of {theiler}")
    dist, idx = index.query(index.points, m)
    ok = _admissible(idx, np.arange(n), theiler)
    order = np.argsort(~ok, axis=1, kind="stable")[:, :k]
    return np.take_along_axis(dist, order, axis=1), np.take_along_axis(idx, order, axis=1)


def k_nearest_distance(index: NeighborIndex, i: int, k: int, theiler: int = 0) -> float:
    """Distance from point ``i`` to its k-th admissible nearest neighbour."""
    k = check_positive_int("k", k)
    theiler = check_positive_int("theiler", theiler, minimum=0)
    m = min(len(index), k + 2 * theiler + 1)
    dist, idx = index.query(index.points[i], m)
    ok = np.abs(idx[0] - int(i)) > theiler
    if ok.sum() < k:
        raise DimensionMismatch(f"Point {i} has fewer than {k} admissible neighbours")
    return float(dist[0][ok][k - 1])


def range_count(
    index: NeighborIndex,
    radii: Any,
    *,
    strict: bool = False,
    include_self: bool = True,
    theiler: int = 0,
) -> np.ndarray:
    """Per indexed point, number of neighbours within its radius.

    ``strict`` counts distances ``< r`` instead of ``<= r``. Points inside the
    Theiler window are never counted; the point itself is added back when
    ``include_self`` is set.
    """
    theiler = check_positive_int("theiler", theiler, minimum=0)
    n = len(index)
    r = np.broadcast_to(np.asarray(radii, dtype=float), (n,)).copy()
    empty = np.zeros(n, dtype=bool)
    if strict:
        empty = r <= 0.0
        r = np.where(empty, 0.0, np.nextafter(r, -np.inf))
    counts = index.ball_counts(index.points, r)
    # Remove the point itself and everything inside its Theiler window.
    r_tree = index._tree_radius(r, n)
    metric = "euclidean" if index.squared else index.metric
    rows = np.arange(n)
    for delta in range(-theiler, theiler + 1):
        j = rows + delta
        valid = (j >= 0) & (j < n)
        d = pairwise_rows(index.points[rows[valid]], index.points[j[valid]], metric)
        counts[valid] -= (d <= r_tree[valid]).astype(int)
    counts = np.where(empty, 0, np.maximum(counts, 0))
    if include_self:
        counts = counts + 1
    return counts


def degenerate_mask(distances: np.ndarray) -> np.ndarray:
    """Points whose k-th neighbour distance is zero (duplicate points)."""
    d = np.asarray(distances, dtype=float)
    last = d[:, -1] if d.ndim == 2 else d
    return last <= 0.0
