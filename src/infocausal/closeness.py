"""Nearest-neighbour interdependence measures of Arnhold et al. (1999).

For embedded states ``X`` and ``Y`` let ``R_i(X)`` be the mean distance of
``x_i`` to its k nearest neighbours, ``R_i(X|Y)`` the mean distance of
``x_i`` to the points of ``X`` whose indices are the k nearest neighbours of
``y_i``, and ``R_i^all(X)`` the mean distance of ``x_i`` to every other
point. Then

    S(X|Y) = < R_i(X) / R_i(X|Y) >                          in [0, 1]
    H(X|Y) = < log(R_i^all(X) / R_i(X|Y)) >
    M(X|Y) = < (R_i^all(X) - R_i(X|Y)) / (R_i^all(X) - R_i(X)) >

Scalar series are delay-embedded with ``dx``/``tau_x`` and ``dy``/``tau_y``;
Datasets and 2-D arrays are used as-is. Both are then length-matched by
dropping trailing points of the longer one.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd

from .datasets import Dataset, as_dataset, embed
from .errors import ComputationError, check_positive_int
from .neighbors import NeighborIndex, check_metric, knn, pairwise_distances, pairwise_rows

_ALL_PAIRS_BLOCK = 512


@dataclass(frozen=True)
class ClosenessMeasure:
    k: int = 3
    dx: int = 2
    dy: int = 2
    tau_x: int = 1
    tau_y: int = 1
    w: int = 0
    metric: str = "sqeuclidean"
    tree_metric: str = "euclidean"

    def __post_init__(self) -> None:
        for name in ("k", "dx", "dy", "tau_x", "tau_y"):
            check_positive_int(name, getattr(self, name))
        check_positive_int("w", self.w, minimum=0)
        check_metric(self.metric)
        check_metric(self.tree_metric)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}


@dataclass(frozen=True)
class SMeasure(ClosenessMeasure):
    """Configuration of :func:`s_measure`."""


@dataclass(frozen=True)
class HMeasure(ClosenessMeasure):
    """Configuration of :func:`h_measure`."""


@dataclass(frozen=True)
class MMeasure(ClosenessMeasure):
    """Configuration of :func:`m_measure`."""


def _reconstruct(v: Any, d: int, tau: int) -> Dataset:
    if isinstance(v, Dataset):
        return v
    if isinstance(v, (pd.Series, pd.DataFrame)):
        v = v.to_numpy(dtype=float)
    arr = np.asarray(v, dtype=float)
    if arr.ndim == 1:
        return embed(arr, d, tau)
    return as_dataset(arr)


def reconstruct_pair(measure: ClosenessMeasure, x: Any, y: Any) -> Tuple[Dataset, Dataset]:
    """Embed scalar inputs and length-match both state spaces."""
    X = _reconstruct(x, measure.dx, measure.tau_x)
    Y = _reconstruct(y, measure.dy, measure.tau_y)
    n = min(len(X), len(Y))
    return X.head(n), Y.head(n)


def _mean_distance_to(xa: np.ndarray, idx: np.ndarray, metric: str) -> np.ndarray:
    d = np.column_stack([pairwise_rows(xa, xa[idx[:, j]], metric) for j in range(idx.shape[1])])
    return d.mean(axis=1)


def _mean_distance_to_all(xa: np.ndarray, metric: str) -> np.ndarray:
    n = xa.shape[0]
    if metric == "sqeuclidean":
        sq = (xa**2).sum(axis=1)
        total = xa.sum(axis=0)
        return (n * sq - 2.0 * xa @ total + sq.sum()) / (n - 1)
    out = np.empty(n)
    for lo in range(0, n, _ALL_PAIRS_BLOCK):
        block = pairwise_distances(xa[lo : lo + _ALL_PAIRS_BLOCK], xa, metric)
        out[lo : lo + _ALL_PAIRS_BLOCK] = block.sum(axis=1) / (n - 1)
    return out


def _neighbour_radii(measure: ClosenessMeasure, X: Dataset, Y: Dataset) -> Tuple[np.ndarray, np.ndarray]:
    _, idx_x = knn(NeighborIndex(X, measure.tree_metric), measure.k, measure.w)
    _, idx_y = knn(NeighborIndex(Y, measure.tree_metric), measure.k, measure.w)
    xa = X.to_numpy()
    return _mean_distance_to(xa, idx_x, measure.metric), _mean_distance_to(xa, idx_y, measure.metric)


def _average(values: np.ndarray, who: str) -> float:
    v = float(np.mean(values))
    if not np.isfinite(v):
        raise ComputationError(f"{who} is undefined for this input (duplicated states?)")
    return v


def s_measure(measure: SMeasure, x: Any, y: Any) -> float:
    X, Y = reconstruct_pair(measure, x, y)
    r_x, r_xy = _neighbour_radii(measure, X, Y)
    with np.errstate(divide="ignore", invalid="ignore"):
        return _average(r_x / r_xy, "S-measure")


def h_measure(measure: HMeasure, x: Any, y: Any) -> float:
    X, Y = reconstruct_pair(measure, x, y)
    _, r_xy = _neighbour_radii(measure, X, Y)
    r_all = _mean_distance_to_all(X.to_numpy(), measure.metric)
    with np.errstate(divide="ignore", invalid="ignore"):
        return _average(np.log(r_all / r_xy), "H-measure")


def m_measure(measure: MMeasure, x: Any, y: Any) -> float:
    X, Y = reconstruct_pair(measure, x, y)
    r_x, r_xy = _neighbour_radii(measure, X, Y)
    r_all = _mean_distance_to_all(X.to_numpy(), measure.metric)
    with np.errstate(divide="ignore", invalid="ignore"):
        return _average((r_all - r_xy) / (r_all - r_x), "M-measure")


__all__ = ["SMeasure", "HMeasure", "MMeasure", "reconstruct_pair", "s_measure", "h_measure", "m_measure"]
