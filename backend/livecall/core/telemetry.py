from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from livecall.core.config import settings


_LOGGER = logging.getLogger("livecall")
_JSONL_LOCK = threading.Lock()
_COLOR = {"on": False}

_RESET = "\033[0m"
_DIM = "\033[90m"
_BOLD = "\033[1m"
# status -> (plain label, ANSI colour)
_STATUS_STYLE = {
    "ok": ("INFO", "\033[32m"),
    "warning": ("WARN", "\033[33m"),
    "error": ("ERR", "\033[31m"),
}
_MAX_DETAIL_ITEMS = 8


def _events_path() -> Path:
    settings.DATA_ROOT.mkdir(parents=True, exist_ok=True)
    return settings.DATA_ROOT / "telemetry_events.jsonl"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _paint(text: str, colour: str) -> str:
    return f"{colour}{text}{_RESET}" if _COLOR["on"] else text


def _short(value: Any, limit: int = 80) -> str:
    if value is None:
        return "n/a"
    text = json.dumps(value, default=str) if isinstance(value, (dict, list, tuple)) else str(value)
    return text if len(text) <= limit else text[: limit - 1] + "…"


def render_line(entry: Dict[str, Any]) -> str:
    """One-line console form of a telemetry entry."""
    label, colour = _STATUS_STYLE.get(str(entry.get("status", "ok")), _STATUS_STYLE["ok"])
    parts: List[str] = [
        _paint(f"{entry.get('component', 'unknown')}/{entry.get('action', 'event')}", _BOLD),
        _paint(label, colour),
    ]
    if entry.get("session_id"):
        parts.append(f"room={_short(entry['session_id'], 24)}")
    if entry.get("duration_ms") is not None:
        parts.append(f"dur={entry['duration_ms']}ms")
    if entry.get("error") is not None:
        parts.append(f"error={_short(entry['error'], 220)}")

    details = entry.get("details")
    if isinstance(details, dict) and details:
        items = [f"{key}={_short(value)}" for key, value in list(details.items())[:_MAX_DETAIL_ITEMS]]
        if len(details) > _MAX_DETAIL_ITEMS:
            items.append("...")
        parts.append(" ".join(items))

    stamp = str(entry.get("timestamp") or entry.get("started_at") or _now())[:19]
    return f"{_paint(stamp, _DIM)} " + " | ".join(parts)


def configure_logging() -> None:
    if getattr(_LOGGER, "_livecall_configured", False):
        return

    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    _LOGGER.setLevel(level)
    formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s", "%Y-%m-%dT%H:%M:%S%z")

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(level)
    _LOGGER.addHandler(console)

    if settings.LOG_COLOR is None:
        is_tty = getattr(console.stream, "isatty", lambda: False)()
        _COLOR["on"] = bool(settings.LOG_PRETTY and is_tty)
    else:
        _COLOR["on"] = bool(settings.LOG_PRETTY and settings.LOG_COLOR)

    settings.DATA_ROOT.mkdir(parents=True, exist_ok=True)
    service_log = logging.FileHandler(settings.DATA_ROOT / "service.log", encoding="utf-8")
    service_log.setFormatter(formatter)
    service_log.setLevel(level)
    _LOGGER.addHandler(service_log)

    _LOGGER._livecall_configured = True  # type: ignore[attr-defined]


def _record(entry: Dict[str, Any]) -> None:
    try:
        with _JSONL_LOCK, open(_events_path(), "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except OSError as exc:
        _LOGGER.warning("telemetry write failed: %s", exc)

    line = render_line(entry)
    status = entry.get("status")
    if status == "error":
        _LOGGER.error(line)
    elif status == "warning":
        _LOGGER.warning(line)
    else:
        _LOGGER.info(line)


def log_event(
    component: str,
    action: str,
    *,
    status: str = "ok",
    duration_ms: Optional[float] = None,
    session_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    entry: Dict[str, Any] = {
        "timestamp": _now(),
        "component": component,
        "action": action,
        "status": status,
        "session_id": session_id,
        "details": details or {},
    }
    if duration_ms is not None:
        entry["duration_ms"] = round(duration_ms, 3)
    _record(entry)


@contextmanager
def timed_step(
    component: str,
    action: str,
    *,
    session_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
):
    """Time the wrapped block and record it; exceptions are recorded then re-raised."""
    started = time.perf_counter()
    entry: Dict[str, Any] = {
        "started_at": _now(),
        "component": component,
        "action": action,
        "status": "ok",
        "session_id": session_id,
        "details": details or {},
    }
    try:
        yield
    except Exception as exc:
        entry["status"] = "error"
        entry["error"] = f"{type(exc).__name__}: {exc}"
        raise
    finally:
        entry["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 3)
        _record(entry)
