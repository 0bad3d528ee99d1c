"""Estimators of (conditional) mutual information.

Every estimator is an immutable configuration object exposing

    estimate(measure, x, y[, z]) -> float

where ``x``, ``y`` and ``z`` are equally long, already time-aligned inputs
(anything :func:`infocausal.datasets.as_dataset` accepts). The result is
expressed in ``measure.base``. Estimators are deterministic: repeated calls
on identical input return identical values.

Nearest-neighbour estimators work in the Chebyshev metric and may return
small negative values near independence. Plug-in estimators over
discretized data never do.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
from scipy.special import digamma

from .datasets import Dataset, as_dataset, check_equal_length, hstack
from .encoding import FixedRectangularBinning, OrdinalPatternEncoding, RectangularBinning, joint_codes
from .errors import (
    ComputationError,
    ConfigurationError,
    DegenerateNeighborhood,
    DegenerateNeighborhoodWarning,
    DimensionMismatch,
    check_positive_int,
)
from .measures import CMIRenyiJizba, CMIShannon, MIShannon, convert_logunit
from .neighbors import NeighborIndex, degenerate_mask, knn, range_count

DEGENERATE_POLICIES = ("raise", "warn")


def _prepare(*inputs: Any) -> Tuple[Dataset, ...]:
    ds = tuple(as_dataset(v) for v in inputs)
    check_equal_length(*ds)
    return ds


def _finish(value_nats: float, measure: Any, who: str) -> float:
    v = float(value_nats)
    if not np.isfinite(v):
        raise ComputationError(f"{who} produced a non-finite estimate ({v})")
    return convert_logunit(v, math.e, float(measure.base))


def _check_knn_params(est: Any) -> None:
    check_positive_int("k", est.k)
    check_positive_int("w", est.w, minimum=0)
    if getattr(est, "on_degenerate", "raise") not in DEGENERATE_POLICIES:
        raise ConfigurationError(f"on_degenerate must be one of {DEGENERATE_POLICIES}, got {est.on_degenerate!r}")


def _report_degenerate(est: Any, mask: np.ndarray) -> None:
    n_bad = int(np.sum(mask))
    if n_bad == 0:
        return
    msg = (
        f"{type(est).__name__}: {n_bad} point(s) have a zero distance to their k-th neighbour "
        f"(k={est.k}); the estimate is biased for duplicated samples"
    )
    if est.on_degenerate == "raise":
        raise DegenerateNeighborhood(msg)
    warnings.warn(msg, DegenerateNeighborhoodWarning, stacklevel=3)


class MutualInformationEstimator:
    """Estimators of I(X; Y)."""

    def estimate(self, measure: Any, x: Any, y: Any, z: Any = None) -> float:
        if not isinstance(measure, MIShannon):
            raise ConfigurationError(f"{type(self).__name__} cannot estimate {type(measure).__name__}")
        if z is not None:
            raise DimensionMismatch(f"{type(self).__name__} estimates unconditional mutual information")
        X, Y = _prepare(x, y)
        return _finish(self._mi_nats(X, Y), measure, type(self).__name__)

    def _mi_nats(self, X: Dataset, Y: Dataset) -> float:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}


class ConditionalMutualInformationEstimator:
    """Estimators of I(X; Y | Z)."""

    def estimate(self, measure: Any, x: Any, y: Any, z: Any = None) -> float:
        if not isinstance(measure, CMIShannon):
            raise ConfigurationError(f"{type(self).__name__} cannot estimate {type(measure).__name__}")
        if z is None:
            raise DimensionMismatch(f"{type(self).__name__} needs a conditioning variable z")
        X, Y, Z = _prepare(x, y, z)
        return _finish(self._cmi_nats(X, Y, Z), measure, type(self).__name__)

    def _cmi_nats(self, X: Dataset, Y: Dataset, Z: Dataset) -> float:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}


# ---------------------------------------------------------------------------
# Nearest-neighbour mutual information
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KSG1(MutualInformationEstimator):
    """Kraskov-Stoegbauer-Grassberger estimator, first algorithm.

    I = psi(k) + psi(N) - < psi(n_x + 1) + psi(n_y + 1) >, with marginal
    counts strictly inside the joint k-th neighbour distance.
    """

    k: int = 3
    w: int = 0
    on_degenerate: str = "raise"

    def __post_init__(self) -> None:
        _check_knn_params(self)

    def _mi_nats(self, X: Dataset, Y: Dataset) -> float:
        n = len(X)
        dist, _ = knn(NeighborIndex(hstack(X, Y), "chebyshev"), self.k, self.w)
        _report_degenerate(self, degenerate_mask(dist))
        eps = dist[:, -1]
        nx = range_count(NeighborIndex(X, "chebyshev"), eps, strict=True, include_self=False, theiler=self.w)
        ny = range_count(NeighborIndex(Y, "chebyshev"), eps, strict=True, include_self=False, theiler=self.w)
        return float(digamma(self.k) + digamma(n) - np.mean(digamma(nx + 1) + digamma(ny + 1)))


@dataclass(frozen=True)
class KSG2(MutualInformationEstimator):
    """Kraskov-Stoegbauer-Grassberger estimator, second algorithm.

    I = psi(k) - 1/k + psi(N) - < psi(n_x) + psi(n_y) >, where the marginal
    radii are the largest marginal distances among the k joint neighbours.
    """

    k: int = 3
    w: int = 0
    on_degenerate: str = "raise"

    def __post_init__(self) -> None:
        _check_knn_params(self)

    def _mi_nats(self, X: Dataset, Y: Dataset) -> float:
        n = len(X)
        dist, idx = knn(NeighborIndex(hstack(X, Y), "chebyshev"), self.k, self.w)
        _report_degenerate(self, degenerate_mask(dist))
        xa, ya = X.to_numpy(), Y.to_numpy()
        eps_x = np.abs(xa[idx] - xa[:, None, :]).max(axis=(1, 2))
        eps_y = np.abs(ya[idx] - ya[:, None, :]).max(axis=(1, 2))
        nx = range_count(NeighborIndex(X, "chebyshev"), eps_x, include_self=False, theiler=self.w)
        ny = range_count(NeighborIndex(Y, "chebyshev"), eps_y, include_self=False, theiler=self.w)
        # The neighbour realising eps_x is always inside the ball.
        nx, ny = np.maximum(nx, 1), np.maximum(ny, 1)
        return float(digamma(self.k) - 1.0 / self.k + digamma(n) - np.mean(digamma(nx) + digamma(ny)))


# ---------------------------------------------------------------------------
# Nearest-neighbour conditional mutual information
# ---------------------------------------------------------------------------


def _marginal_counts(X: Dataset, Y: Dataset, Z: Dataset, radii: np.ndarray, w: int) -> Tuple[np.ndarray, ...]:
    """Inclusive counts (point itself included) in the XZ, YZ and Z spaces."""
    out = []
    for space in (hstack(X, Z), hstack(Y, Z), Z):
        out.append(range_count(NeighborIndex(space, "chebyshev"), radii, include_self=True, theiler=w))
    return tuple(out)


def _k_hat(joint_index: NeighborIndex, dist: np.ndarray, k: int, w: int) -> np.ndarray:
    """k, or the number of exact duplicates where the k-th distance is zero."""
    zero = degenerate_mask(dist)
    k_hat = np.full(len(joint_index), float(k))
    if zero.any():
        dup = range_count(joint_index, 0.0, include_self=False, theiler=w)
        k_hat[zero] = dup[zero]
    return k_hat


@dataclass(frozen=True)
class VejmelkaPalus(ConditionalMutualInformationEstimator):
    """Vejmelka-Palus / Frenzel-Pompe k-NN estimator of Shannon CMI.

    I = psi(k) - < psi(n_xz) + psi(n_yz) - psi(n_z) >, with counts taken
    within the joint-space k-th neighbour distance, point itself included.
    Duplicated samples are reported through ``on_degenerate``.
    """

    k: int = 3
    w: int = 0
    on_degenerate: str = "raise"

    def __post_init__(self) -> None:
        _check_knn_params(self)

    def _cmi_nats(self, X: Dataset, Y: Dataset, Z: Dataset) -> float:
        dist, _ = knn(NeighborIndex(hstack(X, Y, Z), "chebyshev"), self.k, self.w)
        _report_degenerate(self, degenerate_mask(dist))
        nxz, nyz, nz = _marginal_counts(X, Y, Z, dist[:, -1], self.w)
        return float(digamma(self.k) - np.mean(digamma(nxz) + digamma(nyz) - digamma(nz)))


@dataclass(frozen=True)
class Rahimzamani(ConditionalMutualInformationEstimator):
    """CMI estimator for mixtures of discrete and continuous data.

    Per point: psi(k_hat) - log n_xz - log n_yz + log n_z, where k_hat is the
    number of duplicates of the point whenever its k-th neighbour distance is
    zero. Reduces to the Frenzel-Pompe family (up to psi vs log) when no
    duplicates exist.
    """

    k: int = 3
    w: int = 0

    def __post_init__(self) -> None:
        _check_knn_params(self)

    def _cmi_nats(self, X: Dataset, Y: Dataset, Z: Dataset) -> float:
        joint = NeighborIndex(hstack(X, Y, Z), "chebyshev")
        dist, _ = knn(joint, self.k, self.w)
        k_hat = _k_hat(joint, dist, self.k, self.w)
        nxz, nyz, nz = _marginal_counts(X, Y, Z, dist[:, -1], self.w)
        return float(np.mean(digamma(k_hat) - np.log(nxz) - np.log(nyz) + np.log(nz)))


@dataclass(frozen=True)
class MesnerShalizi(ConditionalMutualInformationEstimator):
    """CMI estimator of Mesner & Shalizi for mixed discrete-continuous data.

    Per point: psi(k_hat) - psi(n_xz) - psi(n_yz) + psi(n_z), with the same
    duplicate correction as :class:`Rahimzamani`.
    """

    k: int = 3
    w: int = 0

    def __post_init__(self) -> None:
        _check_knn_params(self)

    def _cmi_nats(self, X: Dataset, Y: Dataset, Z: Dataset) -> float:
        joint = NeighborIndex(hstack(X, Y, Z), "chebyshev")
        dist, _ = knn(joint, self.k, self.w)
        k_hat = _k_hat(joint, dist, self.k, self.w)
        nxz, nyz, nz = _marginal_counts(X, Y, Z, dist[:, -1], self.w)
        return float(np.mean(digamma(k_hat) - digamma(nxz) - digamma(nyz) + digamma(nz)))


# ---------------------------------------------------------------------------
# Parametric reference
# ---------------------------------------------------------------------------


def _logdet_cov(arr: np.ndarray) -> float:
    cov = np.atleast_2d(np.cov(arr, rowvar=False))
    sign, logdet = np.linalg.slogdet(cov)
    if sign <= 0:
        raise ComputationError("Singular covariance matrix in Gaussian estimator")
    return float(logdet)


@dataclass(frozen=True)
class GaussianCMI:
    """Closed-form (conditional) mutual information under a joint Gaussian model."""

    def estimate(self, measure: Any, x: Any, y: Any, z: Any = None) -> float:
        if z is None:
            if not isinstance(measure, MIShannon):
                raise ConfigurationError(f"GaussianCMI cannot estimate {type(measure).__name__} without z")
            X, Y = _prepare(x, y)
            xa, ya = X.to_numpy(), Y.to_numpy()
            v = 0.5 * (_logdet_cov(xa) + _logdet_cov(ya) - _logdet_cov(np.hstack([xa, ya])))
            return _finish(v, measure, "GaussianCMI")
        if not isinstance(measure, CMIShannon):
            raise ConfigurationError(f"GaussianCMI cannot estimate {type(measure).__name__}")
        X, Y, Z = _prepare(x, y, z)
        xa, ya, za = X.to_numpy(), Y.to_numpy(), Z.to_numpy()
        v = 0.5 * (
            _logdet_cov(np.hstack([xa, za]))
            + _logdet_cov(np.hstack([ya, za]))
            - _logdet_cov(np.hstack([xa, ya, za]))
            - _logdet_cov(za)
        )
        return _finish(v, measure, "GaussianCMI")

    def to_dict(self) -> Dict[str, Any]:
        return {"name": "GaussianCMI"}


# ---------------------------------------------------------------------------
# Plug-in estimators over discretized data
# ---------------------------------------------------------------------------


def _probabilities(codes: np.ndarray) -> np.ndarray:
    _, counts = np.unique(codes, return_counts=True)
    return counts / counts.sum()


def shannon_entropy(codes: np.ndarray) -> float:
    """Plug-in Shannon entropy (nats) of a symbol sequence."""
    p = _probabilities(codes)
    return float(-np.sum(p * np.log(p)))


def renyi_entropy(codes: np.ndarray, q: float) -> float:
    """Plug-in Renyi entropy of order ``q`` (nats) of a symbol sequence."""
    p = _probabilities(codes)
    return float(np.log(np.sum(p ** float(q))) / (1.0 - float(q)))


def _joint_entropy(columns: list, q: Optional[float] = None) -> float:
    codes = joint_codes(*columns)
    return shannon_entropy(codes) if q is None else renyi_entropy(codes, q)


class PlugInEstimator:
    """Shared MI / CMI decompositions over per-variable symbol matrices."""

    def _symbols(self, *datasets: Dataset) -> Tuple[np.ndarray, ...]:
        raise NotImplementedError

    def estimate(self, measure: Any, x: Any, y: Any, z: Any = None) -> float:
        name = type(self).__name__
        if z is None:
            if not isinstance(measure, MIShannon):
                raise ConfigurationError(f"{name} needs MIShannon when no conditioning variable is given")
            sx, sy = self._symbols(*_prepare(x, y))
            xs, ys = list(sx.T), list(sy.T)
            v = _joint_entropy(xs) + _joint_entropy(ys) - _joint_entropy(xs + ys)
            return _finish(max(v, 0.0), measure, name)

        sx, sy, sz = self._symbols(*_prepare(x, y, z))
        xs, ys, zs = list(sx.T), list(sy.T), list(sz.T)
        if isinstance(measure, CMIRenyiJizba):
            q = measure.q
            v = (
                _joint_entropy(xs + zs, q)
                + _joint_entropy(ys + zs, q)
                - _joint_entropy(xs + ys + zs, q)
                - _joint_entropy(zs, q)
            )
            return _finish(v, measure, name)
        if not isinstance(measure, CMIShannon):
            raise ConfigurationError(f"{name} cannot estimate {type(measure).__name__}")
        if measure.definition == "mi2":
            i_x_yz = _joint_entropy(xs) + _joint_entropy(ys + zs) - _joint_entropy(xs + ys + zs)
            i_x_z = _joint_entropy(xs) + _joint_entropy(zs) - _joint_entropy(xs + zs)
            v = i_x_yz - i_x_z
        else:
            v = _joint_entropy(xs + zs) + _joint_entropy(ys + zs) - _joint_entropy(xs + ys + zs) - _joint_entropy(zs)
        return _finish(max(v, 0.0), measure, name)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}


@dataclass(frozen=True)
class ValueBinning(PlugInEstimator):
    """Rectangular binning of the joint space; marginals share the joint grid.

    Bins span the data range unless ``low`` and ``high`` fix the grid.
    """

    n_bins: int = 3
    low: Optional[float] = None
    high: Optional[float] = None

    def __post_init__(self) -> None:
        if (self.low is None) != (self.high is None):
            raise ConfigurationError("ValueBinning needs both low and high, or neither")
        _ = self.binning

    @property
    def binning(self) -> Any:
        if self.low is None:
            return RectangularBinning(self.n_bins)
        return FixedRectangularBinning(float(self.low), float(self.high), self.n_bins)

    def _symbols(self, *datasets: Dataset) -> Tuple[np.ndarray, ...]:
        joint = hstack(*datasets)
        codes = self.binning.fit(joint).encode(joint)
        out, start = [], 0
        for d in datasets:
            out.append(codes[:, start : start + d.dim])
            start += d.dim
        return tuple(out)


@dataclass(frozen=True)
class OrdinalPatterns(PlugInEstimator):
    """Plug-in estimation over ordinal patterns of scalar time series.

    Only scalar series are accepted; multivariate input raises
    :class:`DimensionMismatch`.
    """

    m: int = 3
    tau: int = 1

    def __post_init__(self) -> None:
        check_positive_int("m", self.m, minimum=2)
        check_positive_int("tau", self.tau)

    def _symbols(self, *datasets: Dataset) -> Tuple[np.ndarray, ...]:
        enc = OrdinalPatternEncoding(self.m, self.tau)
        for d in datasets:
            if d.dim != 1:
                raise DimensionMismatch(f"OrdinalPatterns accepts scalar time series only, got dimension {d.dim}")
        return tuple(enc.encode_series(d).reshape(-1, 1) for d in datasets)


# ---------------------------------------------------------------------------
# Convenience entry points
# ---------------------------------------------------------------------------


def mutualinfo(measure: MIShannon, est: Any, x: Any, y: Any) -> float:
    return est.estimate(measure, x, y)


def condmutualinfo(measure: Any, est: Any, x: Any, y: Any, z: Any) -> float:
    return est.estimate(measure, x, y, z)


__all__ = [
    "MutualInformationEstimator",
    "ConditionalMutualInformationEstimator",
    "PlugInEstimator",
    "KSG1",
    "KSG2",
    "VejmelkaPalus",
    "Rahimzamani",
    "MesnerShalizi",
    "GaussianCMI",
    "ValueBinning",
    "OrdinalPatterns",
    "shannon_entropy",
    "renyi_entropy",
    "mutualinfo",
    "condmutualinfo",
]
