"""Declarative OCE configuration.

A configuration file is YAML of the form::

    tau_max: 2
    alpha: 0.01
    utest:
      name: SurrogateTest
      nshuffles: 199
      surrogate: permutation
      seed: 1
      measure: {name: MIShannon, base: 2}
      est: {name: KSG2, k: 3, w: 3}
    ctest:
      name: LocalPermutationTest
      nshuffles: 199
      kperm: 5
      measure: {name: CMIShannon}
      est: {name: MesnerShalizi, k: 3, w: 3}

Omitted keys take the dataclass defaults; an omitted ``utest`` / ``ctest``
block gives the default tests of :class:`~infocausal.oce.OCE`. The output of
``OCE.to_dict()`` is itself a valid configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .errors import ConfigurationError
from .estimators import (
    KSG1,
    KSG2,
    GaussianCMI,
    MesnerShalizi,
    OrdinalPatterns,
    Rahimzamani,
    ValueBinning,
    VejmelkaPalus,
)
from .independence import LocalPermutationTest, SurrogateTest
from .measures import CMIRenyiJizba, CMIShannon, EmbeddingTE, MIShannon, TEShannon
from .oce import OCE

MEASURES: Dict[str, Any] = {
    "MIShannon": MIShannon,
    "CMIShannon": CMIShannon,
    "CMIRenyiJizba": CMIRenyiJizba,
    "TEShannon": TEShannon,
}

ESTIMATORS: Dict[str, Any] = {
    "KSG1": KSG1,
    "KSG2": KSG2,
    "VejmelkaPalus": VejmelkaPalus,
    "FrenzelPompe": VejmelkaPalus,
    "Rahimzamani": Rahimzamani,
    "MesnerShalizi": MesnerShalizi,
    "GaussianCMI": GaussianCMI,
    "ValueBinning": ValueBinning,
    "OrdinalPatterns": OrdinalPatterns,
}

TESTS: Dict[str, Any] = {
    "SurrogateTest": SurrogateTest,
    "LocalPermutationTest": LocalPermutationTest,
}


def _split(block: Mapping[str, Any], registry: Mapping[str, Any], kind: str) -> tuple:
    if not isinstance(block, Mapping):
        raise ConfigurationError(f"{kind} must be a mapping, got {type(block).__name__}")
    params = dict(block)
    name = params.pop("name", None)
    if name not in registry:
        raise ConfigurationError(f"Unknown {kind}: {name!r} (expected one of {sorted(registry)})")
    return registry[name], params


def _build(cls: Any, params: Dict[str, Any], kind: str) -> Any:
    try:
        return cls(**params)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid parameters for {kind} {cls.__name__}: {exc}") from exc


def measure_from_dict(block: Mapping[str, Any]) -> Any:
    cls, params = _split(block, MEASURES, "measure")
    if cls is TEShannon and isinstance(params.get("embedding"), Mapping):
        params["embedding"] = _build(EmbeddingTE, dict(params["embedding"]), "embedding")
    return _build(cls, params, "measure")


def estimator_from_dict(block: Mapping[str, Any]) -> Any:
    cls, params = _split(block, ESTIMATORS, "estimator")
    return _build(cls, params, "estimator")


def independence_test_from_dict(block: Mapping[str, Any]) -> Any:
    cls, params = _split(block, TESTS, "independence test")
    if "measure" in params:
        params["measure"] = measure_from_dict(params["measure"])
    if "est" in params:
        params["est"] = estimator_from_dict(params["est"])
    return _build(cls, params, "independence test")


def oce_from_dict(d: Mapping[str, Any]) -> OCE:
    """Build an :class:`OCE` from an already parsed mapping."""
    if not isinstance(d, Mapping):
        raise ConfigurationError(f"OCE configuration must be a mapping, got {type(d).__name__}")
    unknown = set(d) - {"tau_max", "alpha", "utest", "ctest"}
    if unknown:
        raise ConfigurationError(f"Unknown OCE configuration keys: {sorted(unknown)}")
    kwargs: Dict[str, Any] = {}
    if "tau_max" in d:
        kwargs["tau_max"] = d["tau_max"]
    if "alpha" in d:
        kwargs["alpha"] = float(d["alpha"])
    if d.get("utest") is not None:
        kwargs["utest"] = independence_test_from_dict(d["utest"])
    if d.get("ctest") is not None:
        kwargs["ctest"] = independence_test_from_dict(d["ctest"])
    return OCE(**kwargs)


def load_oce_config(path: str | Path) -> OCE:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"OCE configuration not found: {p}")
    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    return oce_from_dict(raw)


def save_oce_config(alg: OCE, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(alg.to_dict(), sort_keys=False), encoding="utf-8")


__all__ = [
    "MEASURES",
    "ESTIMATORS",
    "TESTS",
    "measure_from_dict",
    "estimator_from_dict",
    "independence_test_from_dict",
    "oce_from_dict",
    "load_oce_config",
    "save_oce_config",
]
