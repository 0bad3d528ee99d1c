"""Causal penchants and leanings (McCracken & Weigel, 2016).

The penchant of cause state ``c`` for effect state ``e`` under the
``lag``-assignment ``{C, E} = {x(t - lag), y(t)}`` is

    rho = P(E|C) * (1 + P(C) / (1 - P(C))) - P(E) / (1 - P(C))

Only observed penchants (cause and effect seen together at least once) are
averaged. Inputs must already be discretized.
"""

from __future__ import annotations

from typing import Any, Tuple

import numpy as np
import pandas as pd

from .errors import ComputationError, ConfigurationError, DimensionMismatch


def _symbols(v: Any) -> np.ndarray:
    arr = np.asarray(v.to_numpy() if isinstance(v, (pd.Series, pd.DataFrame)) else v)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim != 1:
        raise DimensionMismatch("Penchants need scalar symbol sequences")
    if arr.dtype.kind == "f" and not np.all(np.isfinite(arr) & (arr == np.round(arr))):
        raise DimensionMismatch("Penchants need discrete (binned or symbolized) input")
    return arr


def _check(x: Any, y: Any, lag: int) -> Tuple[np.ndarray, np.ndarray, int]:
    a, b = _symbols(x), _symbols(y)
    if a.size != b.size:
        raise DimensionMismatch(f"Inputs must have equal length, got {a.size} and {b.size}")
    n = a.size
    if isinstance(lag, bool) or int(lag) != lag or not 1 <= int(lag) < n // 2:
        raise ConfigurationError(f"lag must satisfy 1 <= lag < {n // 2}, got {lag!r}")
    return a, b, int(lag)


def penchant(x: Any, y: Any, lag: int = 1, weighted: bool = False) -> float:
    """Mean observed penchant of ``x(t - lag)`` for ``y(t)``.

    With ``weighted``, each penchant counts as often as its cause-effect pair
    occurs.
    """
    a, b, lag = _check(x, y, lag)
    cause, effect = a[: a.size - lag], b[lag:]
    L = cause.size

    states = np.unique(np.concatenate([a, b]))
    ci = np.searchsorted(states, cause)
    ei = np.searchsorted(states, effect)
    s = states.size

    n_ec = np.zeros((s, s), dtype=np.int64)
    np.add.at(n_ec, (ci, ei), 1)
    n_c = np.bincount(ci, minlength=s)[:, None] * np.ones((1, s), dtype=np.int64)
    n_e = np.ones((s, 1), dtype=np.int64) * np.bincount(ei, minlength=s)[None, :]

    observed = n_ec > 0
    p_c = n_c[observed] / L
    p_e = n_e[observed] / L
    if np.any(p_c >= 1.0):
        raise ComputationError("Penchant undefined: a cause state occupies the whole series")
    kappa = n_ec[observed] / n_c[observed]
    rho = kappa * (1.0 + p_c / (1.0 - p_c)) - p_e / (1.0 - p_c)

    if weighted:
        return float(np.sum(rho * n_ec[observed]) / L)
    return float(np.mean(rho))


def lean(x: Any, y: Any, lag: int = 1, weighted: bool = True) -> float:
    """Mean observed leaning penchant(x, y) - penchant(y, x), in [-2, 2].

    Positive values mean ``x`` more likely drives ``y`` than the reverse.
    """
    return penchant(x, y, lag, weighted=weighted) - penchant(y, x, lag, weighted=weighted)


__all__ = ["penchant", "lean"]
