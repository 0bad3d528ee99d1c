"""Observers of OCE decisions.

The algorithm itself is silent; anything that wants to narrate or record its
decisions implements the hooks below. All hooks receive the target index,
the :class:`~infocausal.oce.LaggedVariable` concerned and, where a test was
run, its :class:`~infocausal.independence.IndependenceTestResult`.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

LOGGER_NAME = "infocausal.oce"


class NullObserver:
    """Ignores every event. Subclass and override the hooks you need."""

    def on_candidate_selected(self, target: int, candidate: Any, result: Any) -> None:
        pass

    def on_candidate_rejected(self, target: int, candidate: Any, result: Any) -> None:
        pass

    def on_no_candidate(self, target: int, n_parents: int) -> None:
        pass

    def on_parent_eliminated(self, target: int, parent: Any, result: Any) -> None:
        pass

    def on_parent_kept(self, target: int, parent: Any, result: Any) -> None:
        pass


def _event_payload(target: int, variable: Any = None, result: Any = None, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"target": int(target)}
    if variable is not None:
        payload["source"] = int(variable.index)
        payload["lag"] = int(variable.lag)
    if result is not None:
        payload["observed"] = float(result.observed)
        payload["pvalue"] = float(result.pvalue)
    payload.update(extra)
    return payload


class LoggingObserver(NullObserver):
    """Narrates decisions through the standard ``logging`` module."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self.logger = logger if logger is not None else logging.getLogger(LOGGER_NAME)
        self.level = level

    def on_candidate_selected(self, target: int, candidate: Any, result: Any) -> None:
        self.logger.log(
            self.level, "target %d: selected %s (I=%.4g, p=%.4g)", target, candidate, result.observed, result.pvalue
        )

    def on_candidate_rejected(self, target: int, candidate: Any, result: Any) -> None:
        self.logger.debug("target %d: rejected %s (I=%.4g, p=%.4g)", target, candidate, result.observed, result.pvalue)

    def on_no_candidate(self, target: int, n_parents: int) -> None:
        self.logger.log(self.level, "target %d: forward selection done with %d parent(s)", target, n_parents)

    def on_parent_eliminated(self, target: int, parent: Any, result: Any) -> None:
        self.logger.log(self.level, "target %d: eliminated %s (p=%.4g)", target, parent, result.pvalue)

    def on_parent_kept(self, target: int, parent: Any, result: Any) -> None:
        self.logger.debug("target %d: kept %s (p=%.4g)", target, parent, result.pvalue)


class JsonlObserver(NullObserver):
    """Append-only JSONL log of OCE decisions."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, event: str, payload: Dict[str, Any]) -> None:
        rec = {
            "ts_utc": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "event": event,
            "payload": payload,
        }
        with self._lock, self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")

    def on_candidate_selected(self, target: int, candidate: Any, result: Any) -> None:
        self.log("candidate_selected", _event_payload(target, candidate, result))

    def on_candidate_rejected(self, target: int, candidate: Any, result: Any) -> None:
        self.log("candidate_rejected", _event_payload(target, candidate, result))

    def on_no_candidate(self, target: int, n_parents: int) -> None:
        self.log("no_candidate", _event_payload(target, n_parents=int(n_parents)))

    def on_parent_eliminated(self, target: int, parent: Any, result: Any) -> None:
        self.log("parent_eliminated", _event_payload(target, parent, result))

    def on_parent_kept(self, target: int, parent: Any, result: Any) -> None:
        self.log("parent_kept", _event_payload(target, parent, result))


def read_jsonl(path: str | Path) -> List[Dict[str, Any]]:
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


class RecordingObserver(NullObserver):
    """Keeps ``(event, payload)`` tuples in memory."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def on_candidate_selected(self, target: int, candidate: Any, result: Any) -> None:
        self.events.append(("candidate_selected", _event_payload(target, candidate, result)))

    def on_candidate_rejected(self, target: int, candidate: Any, result: Any) -> None:
        self.events.append(("candidate_rejected", _event_payload(target, candidate, result)))

    def on_no_candidate(self, target: int, n_parents: int) -> None:
        self.events.append(("no_candidate", _event_payload(target, n_parents=int(n_parents))))

    def on_parent_eliminated(self, target: int, parent: Any, result: Any) -> None:
        self.events.append(("parent_eliminated", _event_payload(target, parent, result)))

    def on_parent_kept(self, target: int, parent: Any, result: Any) -> None:
        self.events.append(("parent_kept", _event_payload(target, parent, result)))

    def names(self) -> List[str]:
        return [e for e, _ in self.events]


__all__ = ["NullObserver", "LoggingObserver", "JsonlObserver", "RecordingObserver", "read_jsonl", "LOGGER_NAME"]
