"""Structured logging: console lines plus a JSON-lines event log."""

import contextvars
import json
import logging
import os
import sys
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from modsearch.core.config import config


def _format_duration(seconds: float) -> str:
    if seconds < 0:
        return "0s"
    if seconds >= 60:
        m = int(seconds // 60)
        s = seconds % 60
        if s < 0.05:
            return f"{m}m"
        return f"{m}m {s:.0f}s" if s >= 1 else f"{m}m {s:.1f}s"
    if seconds >= 0.05:
        return f"{seconds:.1f}s"
    if seconds > 0:
        return "<0.1s"
    return "0s"


def _short_reason(reason: str | None, max_len: int = 80) -> str:
    """One-line short reason for console."""
    if not reason or not reason.strip():
        return ""
    s = reason.strip().replace("\n", " ").strip()
    return s[:max_len] + "..." if len(s) > max_len else s


# (start time, keyword) of the search running in the current task
_search_ctx: contextvars.ContextVar[tuple[float, str] | None] = contextvars.ContextVar(
    "search_request", default=None
)


def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    try:
        return sys.stdout.isatty()
    except Exception:
        return False


def _c(role: str) -> str:
    if not _use_color():
        return ""
    codes = {
        "dim": "\033[38;5;239m",
        "keyword": "\033[38;5;81m",
        "run": "\033[38;5;78m",
        "done_ok": "\033[38;5;78m",
        "done_fail": "\033[38;5;203m",
        "retry": "\033[38;5;221m",
        "duration": "\033[38;5;221m",
        "frame": "\033[38;5;245m",
    }
    return codes.get(role, "")


def _reset() -> str:
    if not _use_color():
        return ""
    return "\033[0m"


@dataclass
class LogEvent:
    event_type: str
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class SearchLogger:
    def __init__(self):
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = config.logs_dir / "search.log"
        self._file_lock = threading.Lock()
        self._log_file_handle = open(self.log_file, "a", encoding="utf-8")
        self._setup_console_logger()

    def _setup_console_logger(self):
        self.console = logging.getLogger("modsearch")
        self.console.setLevel(logging.DEBUG)
        self._console_formatter = logging.Formatter(
            "%(asctime)s │ %(message)s", datefmt="%H:%M:%S"
        )
        if not self.console.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(getattr(logging, config.log_level, logging.INFO))
            handler.setFormatter(self._console_formatter)
            self.console.addHandler(handler)
        self._setup_third_party_console_logging()

    def _setup_third_party_console_logging(self):
        handler = logging.StreamHandler()
        handler.setLevel(logging.WARNING)
        handler.setFormatter(self._console_formatter)
        for name in ("httpx", "httpcore"):
            log = logging.getLogger(name)
            log.setLevel(logging.WARNING)
            log.propagate = False
            log.addHandler(handler)

    def log_event(self, event: LogEvent) -> None:
        with self._file_lock:
            self._log_file_handle.write(event.to_json() + "\n")
            self._log_file_handle.flush()

    def _timestamp(self) -> str:
        return datetime.now().isoformat()

    def search_started(self, keyword: str, side: str) -> None:
        _search_ctx.set((time.monotonic(), keyword))
        self.log_event(
            LogEvent(
                event_type="SEARCH_STARTED",
                timestamp=self._timestamp(),
                data={"keyword": keyword[:200], "side": side},
            )
        )
        self.console.info(
            f"{_c('run')}▶ Search{_reset()}  {_c('keyword')}{keyword[:80]}{_reset()}  ({side})"
        )

    def search_finished(
        self,
        keyword: str,
        outcome: str,
        *,
        success_count: int | None = None,
        error_reason: str | None = None,
    ) -> None:
        pair = _search_ctx.get()
        if pair is not None:
            _search_ctx.set(None)
        elapsed = (time.monotonic() - pair[0]) if pair is not None else 0.0
        data: dict[str, Any] = {
            "keyword": keyword[:200],
            "outcome": outcome,
            "duration_seconds": round(elapsed, 3),
        }
        if success_count is not None:
            data["success_count"] = success_count
        if error_reason:
            data["error_reason"] = error_reason[:500]
        self.log_event(
            LogEvent(event_type="SEARCH_FINISHED", timestamp=self._timestamp(), data=data)
        )
        dur = f"{_c('duration')}{_format_duration(elapsed)}{_reset()}"
        if outcome in ("failed", "error"):
            status_str = f"{_c('done_fail')}[{outcome}: {_short_reason(error_reason)}]{_reset()}"
        else:
            status_str = f"{_c('done_ok')}[{outcome}]{_reset()}"
        count = f"  {success_count} sent" if success_count is not None else ""
        self.console.info(
            f"{_c('done_ok')}✓ Done{_reset()}  {_c('keyword')}{keyword[:80]}{_reset()}  "
            f"in {dur}{count}  {status_str}"
        )

    def upstream_attempt(self, url: str, attempt: int, max_attempts: int) -> None:
        self.log_event(
            LogEvent(
                event_type="UPSTREAM_ATTEMPT",
                timestamp=self._timestamp(),
                data={"url": url, "attempt": attempt, "max_attempts": max_attempts},
            )
        )
        self.console.debug(f"  │ GET {url}  (attempt {attempt}/{max_attempts})")

    def upstream_retry(self, url: str, remaining: int, delay: float, error: BaseException) -> None:
        self.log_event(
            LogEvent(
                event_type="UPSTREAM_RETRY",
                timestamp=self._timestamp(),
                data={
                    "url": url,
                    "remaining": remaining,
                    "delay_seconds": delay,
                    "error": repr(error),
                },
            )
        )
        self.console.info(
            f"  │ {_c('retry')}retry{_reset()} in {_format_duration(delay)}, "
            f"{remaining} left: {_short_reason(str(error) or type(error).__name__)}"
        )

    def frame_emitted(self, frame_type: str, keyword: str) -> None:
        self.log_event(
            LogEvent(
                event_type="FRAME",
                timestamp=self._timestamp(),
                data={"type": frame_type, "keyword": keyword[:200]},
            )
        )
        self.console.debug(f"  │ {_c('frame')}→ {frame_type}{_reset()}")

    def session_superseded(self, session_id: int, keyword: str) -> None:
        self.log_event(
            LogEvent(
                event_type="SESSION_SUPERSEDED",
                timestamp=self._timestamp(),
                data={"session_id": session_id, "keyword": keyword[:200]},
            )
        )
        self.console.debug(f"  │ session #{session_id} ({keyword[:40]}) superseded")

    def error(self, message: str, *args, exception: Exception | None = None, **kwargs):
        event = LogEvent(
            event_type="ERROR",
            timestamp=self._timestamp(),
            data={
                "message": message,
                "exception": str(exception) if exception else None,
            },
        )
        self.log_event(event)

        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        if exception and "exc_info" not in log_kwargs:
            log_kwargs["exc_info"] = exception

        self.console.error(f"❌ Error: {message}", *args, **log_kwargs)

    def info(self, message: str, *args, **kwargs):
        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.info(message, *args, **log_kwargs)

    def warning(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="WARNING",
            timestamp=self._timestamp(),
            data={"message": message[:500]},
        )
        self.log_event(event)

        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.warning(f"⚠️ {message}", *args, **log_kwargs)

    def exception(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="ERROR",
            timestamp=self._timestamp(),
            data={"message": message[:500]},
        )
        self.log_event(event)
        self.console.exception(f"❌ {message}", *args, **kwargs)

    def debug(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="DEBUG", timestamp=self._timestamp(), data={"message": message}
        )
        self.log_event(event)

        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.debug(message, *args, **log_kwargs)


logger = SearchLogger()
