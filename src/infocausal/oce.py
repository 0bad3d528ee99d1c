"""Optimal causation entropy (OCE) causal discovery.

For every target variable ``x_i`` the candidate parents are the lagged
variables ``x_j(-tau)`` for ``j`` in all variables and ``tau = 1..tau_max``,
all aligned with ``x_i(0)`` on the last ``N - tau_max`` points.

Forward selection repeatedly ranks the remaining candidates by their raw
measure with the target (conditioned on the parents selected so far) and
walks the ranking, from the highest positive value down, until one candidate
passes its significance test. Backward elimination then removes, one at a
time, every parent that is independent of the target given the other
parents.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .datasets import Dataset, variables_from
from .errors import ConfigurationError, DimensionMismatch, OCECancelled, check_positive_int
from .estimators import KSG2, MesnerShalizi
from .independence import IndependenceTestResult, LocalPermutationTest, SurrogateTest, independence
from .measures import CMIShannon, MIShannon
from .observers import NullObserver

logger = logging.getLogger(__name__)


def _default_utest() -> SurrogateTest:
    return SurrogateTest(MIShannon(), KSG2(k=3, w=3))


def _default_ctest() -> LocalPermutationTest:
    return LocalPermutationTest(CMIShannon(), MesnerShalizi(k=3, w=3))


@dataclass(frozen=True)
class OCE:
    """OCE configuration.

    ``utest`` decides on the first parent (pairwise), ``ctest`` on every
    later parent and during backward elimination (conditioned on the other
    parents).
    """

    utest: Any = field(default_factory=_default_utest)
    ctest: Any = field(default_factory=_default_ctest)
    tau_max: int = 1
    alpha: float = 0.05

    def __post_init__(self) -> None:
        check_positive_int("tau_max", self.tau_max)
        if not 0.0 < float(self.alpha) < 1.0:
            raise ConfigurationError(f"alpha must lie in (0, 1), got {self.alpha!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tau_max": int(self.tau_max),
            "alpha": float(self.alpha),
            "utest": self.utest.to_dict(),
            "ctest": self.ctest.to_dict(),
        }


@dataclass(frozen=True)
class LaggedVariable:
    """Variable ``index`` observed ``lag`` steps in the past."""

    index: int
    lag: int

    def label(self, names: Optional[Sequence[str]] = None) -> str:
        name = names[self.index] if names is not None else f"x{self.index}"
        return f"{name}(-{self.lag})"

    def __str__(self) -> str:
        return self.label()


@dataclass(frozen=True)
class ParentSet:
    target: int
    parents: Tuple[LaggedVariable, ...] = ()

    def __len__(self) -> int:
        return len(self.parents)


class OCESelectedParents:
    """Parents of one target accumulated during selection, with their samples."""

    def __init__(self, target: int) -> None:
        self.target = int(target)
        self.parents: List[LaggedVariable] = []
        self.samples: List[np.ndarray] = []

    def __len__(self) -> int:
        return len(self.parents)

    def add(self, variable: LaggedVariable, sample: np.ndarray) -> None:
        self.parents.append(variable)
        self.samples.append(sample)

    def remove(self, position: int) -> LaggedVariable:
        self.samples.pop(position)
        return self.parents.pop(position)

    def conditioning(self, exclude: Optional[int] = None) -> Optional[Dataset]:
        """Joint dataset of the parent samples, optionally leaving one out."""
        cols = [s for k, s in enumerate(self.samples) if k != exclude]
        if not cols:
            return None
        return Dataset(np.column_stack(cols))

    def freeze(self) -> ParentSet:
        return ParentSet(target=self.target, parents=tuple(self.parents))


def candidate_pool(variables: Sequence[np.ndarray], tau_max: int) -> List[Tuple[LaggedVariable, np.ndarray]]:
    """Every ``x_j(-tau)`` aligned with ``x_i(0) = x_i[tau_max:]``.

    Ordered by variable, then by lag; this order breaks ranking ties.
    """
    n = len(variables[0])
    pool = []
    for j, v in enumerate(variables):
        for tau in range(1, tau_max + 1):
            pool.append((LaggedVariable(j, tau), v[tau_max - tau : n - tau]))
    return pool


def _prepare_variables(x: Any, tau_max: int) -> Tuple[List[np.ndarray], List[str]]:
    variables, names = variables_from(x)
    if not variables:
        raise DimensionMismatch("OCE needs at least one variable")
    lengths = {v.size for v in variables}
    if len(lengths) != 1:
        raise DimensionMismatch(f"Variables must have equal length, got {sorted(lengths)}")
    if variables[0].size - tau_max < 2:
        raise DimensionMismatch(f"Series of length {variables[0].size} too short for tau_max={tau_max}")
    return variables, names


def _raw_measure(alg: OCE, target: np.ndarray, sample: np.ndarray, cond: Optional[Dataset]) -> float:
    try:
        if cond is None:
            v = alg.utest.est.estimate(alg.utest.measure, target, sample)
        else:
            v = alg.ctest.est.estimate(alg.ctest.measure, target, sample, cond)
    except ArithmeticError as exc:
        logger.debug("raw measure failed, candidate skipped: %s", exc)
        return -np.inf
    v = float(v)
    return v if np.isfinite(v) else -np.inf


def _significance(
    alg: OCE,
    target: np.ndarray,
    sample: np.ndarray,
    cond: Optional[Dataset],
    rng: Optional[np.random.Generator],
) -> IndependenceTestResult:
    if cond is None:
        return independence(alg.utest, target, sample, rng=rng)
    return independence(alg.ctest, target, sample, cond, rng=rng)


def _check_stop(should_stop: Optional[Callable[[], bool]], target: int) -> None:
    if should_stop is not None and should_stop():
        raise OCECancelled(f"Parent selection for target {target} cancelled")


def select_parents(
    alg: OCE,
    x: Any,
    i: int,
    observer: Any = None,
    rng: Optional[np.random.Generator] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> ParentSet:
    """Forward selection then backward elimination of the parents of variable ``i``.

    A candidate whose raw measure cannot be computed is skipped; a failing
    significance test aborts the whole selection.
    """
    variables, _ = _prepare_variables(x, alg.tau_max)
    if not 0 <= int(i) < len(variables):
        raise ConfigurationError(f"Target index {i} out of range for {len(variables)} variables")
    i = int(i)
    obs = observer if observer is not None else NullObserver()
    target = variables[i][alg.tau_max :]
    pool = candidate_pool(variables, alg.tau_max)
    acc = OCESelectedParents(i)

    # Forward selection.
    while pool:
        _check_stop(should_stop, i)
        cond = acc.conditioning()
        scores = np.array([_raw_measure(alg, target, sample, cond) for _, sample in pool])
        selected = None
        for pos in np.argsort(-scores, kind="stable"):
            if not scores[pos] > 0.0:
                break
            variable, sample = pool[pos]
            result = _significance(alg, target, sample, cond, rng)
            if result.pvalue < alg.alpha:
                obs.on_candidate_selected(i, variable, result)
                selected = int(pos)
                break
            obs.on_candidate_rejected(i, variable, result)
        if selected is None:
            break
        variable, sample = pool.pop(selected)
        acc.add(variable, sample)
    obs.on_no_candidate(i, len(acc))

    # Backward elimination.
    if len(acc) >= 2:
        max_passes = len(acc)
        passes = 0
        while len(acc) >= 2 and passes < max_passes:
            _check_stop(should_stop, i)
            passes += 1
            removed = False
            for k in range(len(acc)):
                result = independence(alg.ctest, target, acc.samples[k], acc.conditioning(exclude=k), rng=rng)
                if result.pvalue >= alg.alpha:
                    obs.on_parent_eliminated(i, acc.remove(k), result)
                    removed = True
                    break
                obs.on_parent_kept(i, acc.parents[k], result)
            if not removed:
                break

    return acc.freeze()


@dataclass(frozen=True)
class OCEResult:
    """Selected parents of every variable."""

    parents: Tuple[ParentSet, ...]
    names: Tuple[str, ...]

    def parent_labels(self) -> Dict[str, List[str]]:
        return {self.names[ps.target]: [p.label(self.names) for p in ps.parents] for ps in self.parents}

    def edges(self) -> List[Tuple[int, int, int]]:
        """``(source, target, lag)`` triples, self loops excluded."""
        out = []
        for ps in self.parents:
            for p in ps.parents:
                if p.index != ps.target:
                    out.append((p.index, ps.target, p.lag))
        return out

    def adjacency(self) -> Dict[int, List[int]]:
        """Adjacency list ``source -> targets`` of the causal graph."""
        adj: Dict[int, List[int]] = {j: [] for j in range(len(self.names))}
        for src, tgt, _ in self.edges():
            if tgt not in adj[src]:
                adj[src].append(tgt)
        return {j: sorted(t) for j, t in adj.items()}

    def adjacency_matrix(self) -> np.ndarray:
        """``A[j, i] == 1`` when ``j -> i``."""
        n = len(self.names)
        a = np.zeros((n, n), dtype=int)
        for src, tgt, _ in self.edges():
            a[src, tgt] = 1
        return a

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "source": src,
                "target": tgt,
                "lag": lag,
                "source_name": self.names[src],
                "target_name": self.names[tgt],
            }
            for src, tgt, lag in self.edges()
        ]
        return pd.DataFrame(rows, columns=["source", "target", "lag", "source_name", "target_name"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "names": list(self.names),
            "parents": [
                {"target": ps.target, "parents": [[p.index, p.lag] for p in ps.parents]} for ps in self.parents
            ],
        }

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "OCEResult":
        parents = tuple(
            ParentSet(
                target=int(ps["target"]),
                parents=tuple(LaggedVariable(int(j), int(lag)) for j, lag in ps.get("parents") or []),
            )
            for ps in d.get("parents") or []
        )
        return OCEResult(parents=parents, names=tuple(str(n) for n in d.get("names") or []))


def save_json(result: OCEResult, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)


def load_json(path: str | Path) -> OCEResult:
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        d = json.load(f)
    return OCEResult.from_dict(d)


def infer_graph(
    alg: OCE,
    x: Any,
    observer: Any = None,
    n_jobs: int = 1,
    seed: Optional[int] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> OCEResult:
    """Run OCE on every variable of ``x``.

    ``x`` is a DataFrame, a 2-D array (columns are variables) or a sequence
    of scalar series. With ``seed``, target ``i`` draws its resamples from
    the ``i``-th child of ``numpy.random.SeedSequence(seed)``; otherwise the
    tests' own seeds are used. Either way the result does not depend on
    ``n_jobs``.
    """
    n_jobs = check_positive_int("n_jobs", n_jobs)
    variables, names = _prepare_variables(x, alg.tau_max)
    n = len(variables)
    if seed is None:
        rngs: List[Optional[np.random.Generator]] = [None] * n
    else:
        rngs = [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(n)]

    def run(i: int) -> ParentSet:
        return select_parents(alg, variables, i, observer=observer, rng=rngs[i], should_stop=should_stop)

    logger.info("OCE on %d variables (tau_max=%d, alpha=%g, n_jobs=%d)", n, alg.tau_max, alg.alpha, n_jobs)
    if n_jobs == 1 or n == 1:
        parents = [run(i) for i in range(n)]
    else:
        with ThreadPoolExecutor(max_workers=min(n_jobs, n)) as pool:
            parents = list(pool.map(run, range(n)))
    return OCEResult(parents=tuple(parents), names=tuple(names))


__all__ = [
    "OCE",
    "LaggedVariable",
    "ParentSet",
    "OCESelectedParents",
    "OCEResult",
    "candidate_pool",
    "select_parents",
    "infer_graph",
    "save_json",
    "load_json",
]
