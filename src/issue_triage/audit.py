"""Tool-call audit trail.

Every tool invocation produces exactly one JSON line: on stderr always, and in
a size-rotated file when ``TRIAGE_AUDIT_LOG_PATH`` is set. Reasons are error
messages from ``TriageError`` and never carry argument values.
"""

from __future__ import annotations

import json
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

SUCCEEDED = "succeeded"
DENIED = "denied"
FAILED = "failed"


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """One tool invocation as recorded in the audit trail."""

    timestamp: str
    correlation_id: str
    operation: str
    target: str
    outcome: str
    reason: str | None
    duration_ms: int | None

    def to_json(self) -> str:
        record: dict[str, object] = {
            "timestamp": self.timestamp,
            "correlation_id": self.correlation_id,
            "operation": self.operation,
            "target": self.target,
            "outcome": self.outcome,
        }
        if self.reason is not None:
            record["reason"] = self.reason
        if self.duration_ms is not None:
            record["duration_ms"] = self.duration_ms
        return json.dumps(record, sort_keys=True, separators=(",", ":"))


class AuditLogger:
    """JSONL audit sink with optional file rotation (``audit.jsonl`` -> ``.1`` -> ``.2``)."""

    def __init__(
        self,
        *,
        sink_path: Path | None,
        max_bytes: int = 5 * 1024 * 1024,
        max_backups: int = 2,
    ) -> None:
        self._sink_path = sink_path
        self._max_bytes = max_bytes
        self._max_backups = max_backups

    def _backup(self, index: int) -> Path:
        assert self._sink_path is not None
        return self._sink_path.with_name(f"{self._sink_path.name}.{index}")

    def _rotate(self, path: Path) -> None:
        if not path.exists() or path.stat().st_size < self._max_bytes:
            return
        if self._max_backups < 1:
            path.write_text("", encoding="utf-8")
            return
        for index in range(self._max_backups, 0, -1):
            src = path if index == 1 else self._backup(index - 1)
            if src.exists():
                src.replace(self._backup(index))

    def write_event(self, event: AuditEvent) -> None:
        line = event.to_json()
        print(line, file=sys.stderr)

        path = self._sink_path
        if path is None:
            return
        # Best-effort: file sink errors are ignored.
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate(path)
            with path.open("a", encoding="utf-8") as sink:
                sink.write(line + "\n")
        except OSError:  # pragma: no cover
            return

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


def build_event(
    *,
    correlation_id: str,
    operation: str,
    target: str,
    outcome: str,
    reason: str | None = None,
    duration_ms: int | None = None,
) -> AuditEvent:
    """Stamp an audit event with the current UTC time."""
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return AuditEvent(
        timestamp=timestamp,
        correlation_id=correlation_id,
        operation=operation,
        target=target,
        outcome=outcome,
        reason=reason,
        duration_ms=duration_ms,
    )
