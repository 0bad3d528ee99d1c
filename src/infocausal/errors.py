from __future__ import annotations


class InfoCausalError(Exception):
    """Base class for every error raised by infocausal."""


class ConfigurationError(InfoCausalError, ValueError):
    """Invalid hyper-parameter, detected when the object is constructed."""


class DimensionMismatch(InfoCausalError, ValueError):
    """Inputs violate a length or dimensionality contract."""


class ComputationError(InfoCausalError, ArithmeticError):
    """Numeric failure while computing an estimate."""


class DegenerateNeighborhood(ComputationError):
    """Zero k-th nearest neighbour distance (duplicate points)."""


class ResampleFailure(InfoCausalError, RuntimeError):
    """An independence test failed while computing its null distribution."""


class OCECancelled(InfoCausalError):
    """Cooperative cancellation requested during parent selection."""


class DegenerateNeighborhoodWarning(RuntimeWarning):
    pass


def check_positive_int(name: str, value: int, *, minimum: int = 1) -> int:
    try:
        ok = not isinstance(value, bool) and int(value) == value and int(value) >= minimum
    except (TypeError, ValueError):
        ok = False
    if not ok:
        raise ConfigurationError(f"{name} must be an integer >= {minimum}, got {value!r}")
    return int(value)
