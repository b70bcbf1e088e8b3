from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

LogFn = Callable[[dict[str, Any]], None]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_event(path: Path, event: dict[str, Any]) -> None:
    """
    Append one JSONL record to the run log.
    Best-effort: never raise.
    """
    record = {"ts": utcnow_iso(), **event}
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps(record, ensure_ascii=False, sort_keys=True, default=str) + "\n")
    except Exception:
        # Never let the run log break the workflow.
        pass


def run_log_fn(path: str | Path | None) -> LogFn | None:
    if not path:
        return None
    p = Path(path).expanduser()

    def _fn(event: dict[str, Any]) -> None:
        log_event(p, event)

    return _fn


def emit(log_fn: LogFn | None, event: dict[str, Any]) -> None:
    if log_fn is None:
        return
    try:
        log_fn(event)
    except Exception:
        # Never let logging break HTTP handling
        pass
