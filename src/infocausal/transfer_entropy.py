from __future__ import annotations

from typing import Any, List, Optional, Tuple

import numpy as np

from .datasets import Dataset, as_dataset, hstack
from .errors import ConfigurationError, DimensionMismatch
from .measures import EmbeddingTE, TEShannon


def _past(arr: np.ndarray, d: int, tau: int, start: int, n: int) -> List[np.ndarray]:
    # Column j holds x(t - j * tau) for t = start .. start + n - 1.
    return [arr[start - j * tau : start - j * tau + n] for j in range(d)]


def te_embed(
    source: Any,
    target: Any,
    cond: Any = None,
    embedding: Optional[EmbeddingTE] = None,
) -> Tuple[Dataset, Dataset, Dataset, Optional[Dataset]]:
    """Aligned delay reconstruction for transfer entropy.

    Returns ``(target_future, source_past, target_past, cond_past)`` where
    the future is ``target(t + horizon)`` and each past block holds
    ``v(t), v(t - tau), ...``. ``cond_past`` is None without ``cond``;
    every column of a multivariate ``cond`` gets ``d_cond`` coordinates.
    """
    emb = embedding if embedding is not None else EmbeddingTE()
    src, tgt = as_dataset(source), as_dataset(target)
    if src.dim != 1 or tgt.dim != 1:
        raise DimensionMismatch("Transfer entropy needs scalar source and target series")
    cnd = as_dataset(cond) if cond is not None else None
    lengths = {len(src), len(tgt)} | ({len(cnd)} if cnd is not None else set())
    if len(lengths) != 1:
        raise DimensionMismatch(f"Transfer entropy inputs must have equal length, got {sorted(lengths)}")

    dims = [emb.d_target, emb.d_source] + ([emb.d_cond] if cnd is not None else [])
    start = (max(dims) - 1) * emb.tau
    n = len(tgt) - start - emb.horizon
    if n < 1:
        raise DimensionMismatch(
            f"Series of length {len(tgt)} too short for the embedding "
            f"(needs more than {start + emb.horizon} points)"
        )

    t = tgt.column(0)
    future = Dataset(t[start + emb.horizon : start + emb.horizon + n])
    source_past = Dataset(np.column_stack(_past(src.column(0), emb.d_source, emb.tau, start, n)))
    target_past = Dataset(np.column_stack(_past(t, emb.d_target, emb.tau, start, n)))
    cond_past = None
    if cnd is not None:
        cols: List[np.ndarray] = []
        for c in cnd.columns():
            cols.extend(_past(c, emb.d_cond, emb.tau, start, n))
        cond_past = Dataset(np.column_stack(cols))
    return future, source_past, target_past, cond_past


def transfer_entropy(measure: TEShannon, est: Any, source: Any, target: Any, cond: Any = None) -> float:
    """TE(source -> target [| cond]) as I(target_future; source_past | target_past [, cond_past])."""
    if not isinstance(measure, TEShannon):
        raise ConfigurationError(f"transfer_entropy needs a TEShannon measure, got {type(measure).__name__}")
    future, source_past, target_past, cond_past = te_embed(source, target, cond, measure.embedding)
    z = target_past if cond_past is None else hstack(target_past, cond_past)
    return est.estimate(measure.cmi(), future, source_past, z)


__all__ = ["te_embed", "transfer_entropy"]
