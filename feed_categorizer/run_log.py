from __future__ import annotations

import json
import sys
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: limit - 1] + "…"


class _Sink:
    """Line-oriented target: a file opened lazily, or a borrowed stream left open on close."""

    def __init__(self, path: Path | None, stream: TextIO | None, *, overwrite: bool) -> None:
        self._path = path
        self._borrowed = stream
        self._mode = "w" if overwrite else "a"
        self._fp: TextIO | None = None

    def write_line(self, line: str) -> None:
        fp = self._acquire()
        fp.write(line + "\n")
        fp.flush()

    def _acquire(self) -> TextIO:
        if self._fp is None:
            if self._borrowed is not None:
                self._fp = self._borrowed
            elif self._path is not None:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._fp = self._path.open(self._mode, encoding="utf-8", newline="\n")
                # Reopening after close() must not truncate what was already written.
                self._mode = "a"
            else:
                raise RuntimeError("Log sink has neither a path nor a stream")
        return self._fp

    def close(self) -> None:
        fp, self._fp = self._fp, None
        if fp is not None and fp is not self._borrowed:
            fp.close()


class RunLogger:
    """
    JSONL event log for a refresh.

    One object per line: ts, level, event, session_id, and optionally run_id, url and
    data (the keyword arguments of the call). Safe to share between the two fetch
    threads of a refresh.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        stream: TextIO | None = None,
        overwrite: bool = True,
        run_id: str | None = None,
        min_level: str = "DEBUG",
    ) -> None:
        if path is None and stream is None:
            raise ValueError("RunLogger needs a path or a stream")

        self._sink = _Sink(Path(path) if path is not None else None, stream, overwrite=overwrite)
        self._run_id = (run_id or "").strip() or None
        self._session_id = uuid.uuid4().hex
        self._threshold = LEVELS.get((min_level or "").strip().upper(), LEVELS["DEBUG"])
        self._lock = Lock()

    @classmethod
    def open(cls, path: str | Path, *, overwrite: bool = True, run_id: str | None = None) -> "RunLogger":
        """File-backed logger; the file is created immediately so it exists even if nothing is logged."""
        logger = cls(path, overwrite=overwrite, run_id=run_id)
        with logger._lock:
            logger._sink._acquire()
        return logger

    @classmethod
    def to_stderr(cls, *, min_level: str = "INFO") -> "RunLogger":
        return cls(stream=sys.stderr, min_level=min_level)

    def __enter__(self) -> "RunLogger":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._sink.close()

    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("DEBUG", event, url=url, **data)

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("INFO", event, url=url, **data)

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("WARN", event, url=url, **data)

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, url=url, **data)

    def exception(self, event: str, *, exc: BaseException, url: str | None = None, **data: Any) -> None:
        formatted = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        data["error"] = {
            "type": type(exc).__name__,
            "message": truncate(str(exc), limit=2000),
            "traceback": truncate(formatted, limit=12000),
        }
        self.log("ERROR", event, url=url, **data)

    def log(self, level: str, event: str, *, url: str | None = None, **data: Any) -> None:
        name = (level or "").strip().upper() or "INFO"
        if LEVELS.get(name, LEVELS["INFO"]) < self._threshold:
            return

        line = json.dumps(
            self._record(name, event, url, data),
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        with self._lock:
            self._sink.write_line(line)

    def _record(self, level: str, event: str, url: str | None, data: dict[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": (event or "").strip() or "event",
            "session_id": self._session_id,
        }
        if self._run_id:
            record["run_id"] = self._run_id
        u = (url or "").strip()
        if u:
            record["url"] = u
        if data:
            record["data"] = data
        return record


class NullRunLogger(RunLogger):
    """Discards every event; the default for library callers that pass no logger."""

    def __init__(self) -> None:
        pass

    def log(self, level: str, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def close(self) -> None:
        return None


def ensure_logger(logger: RunLogger | None) -> RunLogger:
    return logger if logger is not None else NullRunLogger()
