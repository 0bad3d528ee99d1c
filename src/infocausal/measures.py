from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from .errors import ConfigurationError, check_positive_int

CMI_DEFINITIONS = ("h4", "mi2")


def _check_base(base: float) -> None:
    if not (float(base) > 0.0) or float(base) == 1.0:
        raise ConfigurationError(f"Logarithm base must be positive and != 1, got {base!r}")


def convert_logunit(value: float, from_base: float, to_base: float) -> float:
    """Re-express an information quantity computed with log base ``from_base``."""
    if from_base == to_base:
        return float(value)
    return float(value) * math.log(from_base) / math.log(to_base)


@dataclass(frozen=True)
class MIShannon:
    """Shannon mutual information I(X; Y)."""

    base: float = 2

    def __post_init__(self) -> None:
        _check_base(self.base)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}


@dataclass(frozen=True)
class CMIShannon:
    """Shannon conditional mutual information I(X; Y | Z).

    ``definition`` selects the decomposition used by plug-in estimators:
    - h4: H(XZ) + H(YZ) - H(XYZ) - H(Z)
    - mi2: I(X; YZ) - I(X; Z)
    Dedicated conditional estimators ignore it.
    """

    base: float = 2
    definition: str = "h4"

    def __post_init__(self) -> None:
        _check_base(self.base)
        if self.definition not in CMI_DEFINITIONS:
            raise ConfigurationError(f"Unknown CMI definition: {self.definition!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}


@dataclass(frozen=True)
class CMIRenyiJizba:
    """Renyi conditional mutual information of Jizba et al. (2012).

    I_q(X; Y | Z) = H_q(XZ) + H_q(YZ) - H_q(XYZ) - H_q(Z)
    """

    base: float = 2
    q: float = 1.5

    def __post_init__(self) -> None:
        _check_base(self.base)
        if not (float(self.q) > 0.0) or float(self.q) == 1.0:
            raise ConfigurationError(f"Renyi order q must be positive and != 1, got {self.q!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}


@dataclass(frozen=True)
class EmbeddingTE:
    """Delay reconstruction used by transfer entropy.

    ``d_target`` / ``d_source`` / ``d_cond`` past coordinates spaced by
    ``tau``, and a target future ``horizon`` steps ahead.
    """

    d_target: int = 1
    d_source: int = 1
    d_cond: int = 1
    tau: int = 1
    horizon: int = 1

    def __post_init__(self) -> None:
        for name in ("d_target", "d_source", "d_cond", "tau", "horizon"):
            check_positive_int(name, getattr(self, name))


@dataclass(frozen=True)
class TEShannon:
    """Shannon transfer entropy, computed as a conditional mutual information."""

    base: float = 2
    embedding: EmbeddingTE = field(default_factory=EmbeddingTE)

    def __post_init__(self) -> None:
        _check_base(self.base)

    def cmi(self) -> CMIShannon:
        return CMIShannon(base=self.base)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": type(self).__name__, **asdict(self)}
