"""Resampling-based independence tests.

A test is a frozen configuration: measure, estimator, number of resamples
and seed. :func:`independence` computes the observed statistic, then the
full array of resampled statistics, then the one-sided p-value

    p = (1 + #{s >= observed}) / (R + 1)

which lies in (0, 1] for every R >= 0. The significance level is applied by
the caller through :meth:`IndependenceTestResult.is_dependent`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from .datasets import Dataset, as_dataset, check_equal_length
from .errors import ConfigurationError, ResampleFailure, check_positive_int
from .estimators import KSG2, MesnerShalizi
from .measures import CMIShannon, MIShannon
from .surrogates import get_surrogate, local_neighbors, restricted_permutation


@dataclass(frozen=True)
class SurrogateTest:
    """Replaces ``x`` by surrogates and recomputes the full estimate each time."""

    measure: Any = field(default_factory=MIShannon)
    est: Any = field(default_factory=KSG2)
    nshuffles: int = 100
    surrogate: str = "permutation"
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        check_positive_int("nshuffles", self.nshuffles, minimum=0)
        get_surrogate(self.surrogate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": "SurrogateTest",
            "measure": self.measure.to_dict(),
            "est": self.est.to_dict(),
            "nshuffles": int(self.nshuffles),
            "surrogate": self.surrogate,
            "seed": self.seed,
        }


@dataclass(frozen=True)
class LocalPermutationTest:
    """Conditional test permuting ``y`` within ``kperm``-neighbourhoods of ``z``."""

    measure: Any = field(default_factory=CMIShannon)
    est: Any = field(default_factory=MesnerShalizi)
    nshuffles: int = 100
    kperm: int = 5
    w: int = 0
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        check_positive_int("nshuffles", self.nshuffles, minimum=0)
        check_positive_int("kperm", self.kperm)
        check_positive_int("w", self.w, minimum=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": "LocalPermutationTest",
            "measure": self.measure.to_dict(),
            "est": self.est.to_dict(),
            "nshuffles": int(self.nshuffles),
            "kperm": int(self.kperm),
            "w": int(self.w),
            "seed": self.seed,
        }


@dataclass(frozen=True)
class IndependenceTestResult:
    observed: float
    surrogates: np.ndarray
    pvalue: float
    nshuffles: int

    def is_dependent(self, alpha: float) -> bool:
        """Reject independence at level ``alpha``."""
        return bool(self.pvalue < float(alpha))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "observed": float(self.observed),
            "pvalue": float(self.pvalue),
            "nshuffles": int(self.nshuffles),
            "surrogates": [float(v) for v in self.surrogates],
        }


def pvalue(observed: float, surrogates: np.ndarray) -> float:
    s = np.asarray(surrogates, dtype=float)
    return float((1 + int(np.sum(s >= observed))) / (s.size + 1))


def _estimate(test: Any, x: Dataset, y: Dataset, z: Optional[Dataset]) -> float:
    if z is None:
        return float(test.est.estimate(test.measure, x, y))
    return float(test.est.estimate(test.measure, x, y, z))


def independence(
    test: Any,
    x: Any,
    y: Any,
    z: Any = None,
    *,
    rng: Optional[np.random.Generator] = None,
) -> IndependenceTestResult:
    """Run ``test`` on ``x`` and ``y`` (given ``z``).

    Any error raised while resampling aborts the test with
    :class:`ResampleFailure`; errors on the observed data propagate as is.
    """
    X, Y = as_dataset(x), as_dataset(y)
    Z = as_dataset(z) if z is not None else None
    check_equal_length(X, Y, *([Z] if Z is not None else []))
    if rng is None:
        rng = np.random.default_rng(test.seed)

    if isinstance(test, SurrogateTest):
        make = get_surrogate(test.surrogate)

        def resample() -> float:
            return _estimate(test, make(X, rng), Y, Z)

    elif isinstance(test, LocalPermutationTest):
        if Z is None:
            raise ConfigurationError("LocalPermutationTest needs a conditioning variable z")
        neighbors = local_neighbors(Z, test.kperm, test.w)
        y_arr = Y.to_numpy()

        def resample() -> float:
            return _estimate(test, X, Dataset(y_arr[restricted_permutation(neighbors, rng)]), Z)

    else:
        raise ConfigurationError(f"Unknown independence test: {type(test).__name__}")

    observed = _estimate(test, X, Y, Z)
    surrogates = np.empty(int(test.nshuffles), dtype=float)
    for r in range(surrogates.size):
        try:
            surrogates[r] = resample()
        except Exception as exc:
            raise ResampleFailure(f"{type(test).__name__} failed on resample {r + 1}/{surrogates.size}: {exc}") from exc

    return IndependenceTestResult(
        observed=observed,
        surrogates=surrogates,
        pvalue=pvalue(observed, surrogates),
        nshuffles=int(test.nshuffles),
    )


__all__ = ["SurrogateTest", "LocalPermutationTest", "IndependenceTestResult", "independence", "pvalue"]
