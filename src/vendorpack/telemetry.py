"""Console status lines and the JSONL audit trail of a packaging run."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

EVENT_LOG_ENV = "VENDORPACK_EVENT_LOG"
PREFIX = ">>>"


def status(message: str) -> None:
    print(f"{PREFIX} {message}", flush=True)


def warning(message: str) -> None:
    print(f"{PREFIX} WARNING: {message}", flush=True)


def error(message: str) -> None:
    print(f"{PREFIX} ERROR: {message}", flush=True)


def banner(message: str) -> None:
    print(f"=== {message} ===", flush=True)


class EventEmitter:
    """Write JSON events to an append-only log."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = {
            "event": event_type,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "payload": payload,
        }
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, sort_keys=True) + "\n")
        return record


class NullEmitter:
    def emit(self, event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {"event": event_type, "payload": payload}


def event_log(path: Optional[Path] = None):
    """Return an emitter for ``path``, the environment override, or a no-op."""

    if path is None:
        env_path = os.getenv(EVENT_LOG_ENV)
        if not env_path:
            return NullEmitter()
        path = Path(env_path)
    return EventEmitter(path)


__all__ = [
    "EVENT_LOG_ENV",
    "EventEmitter",
    "NullEmitter",
    "banner",
    "error",
    "event_log",
    "status",
    "warning",
]
