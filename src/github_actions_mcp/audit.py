"""Structured audit logging.

One audit event is written per tool call. Events must never contain tokens; the target
repository and the failure reason are the only caller-derived fields.
"""

from __future__ import annotations

import json
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


def new_request_id() -> str:
    return uuid.uuid4().hex


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """A single audit event."""

    timestamp: str
    request_id: str
    operation: str
    target_repo: str
    outcome: str
    reason: str | None
    status_code: int | None
    duration_ms: int | None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "timestamp": self.timestamp,
            "request_id": self.request_id,
            "operation": self.operation,
            "target_repo": self.target_repo,
            "outcome": self.outcome,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        if self.duration_ms is not None:
            payload["duration_ms"] = self.duration_ms
        return payload


class AuditLogger:
    """Writes audit events as JSONL to stderr and optionally to a file."""

    def __init__(
        self,
        *,
        sink_path: Path | None,
        max_bytes: int = 5 * 1024 * 1024,
        max_backups: int = 2,
    ) -> None:
        """Create an audit logger.

        Failures writing the optional file sink never break tool execution.
        """
        self._sink_path = sink_path
        self._max_bytes = max_bytes
        self._max_backups = max_backups

    def _rotate_if_needed(self, sink: Path) -> None:
        if not sink.exists() or sink.stat().st_size < self._max_bytes:
            return
        if self._max_backups <= 0:
            sink.write_text("", encoding="utf-8")
            return
        # audit.jsonl -> audit.jsonl.1 -> ... -> audit.jsonl.<max_backups>
        Path(f"{sink}.{self._max_backups}").unlink(missing_ok=True)
        for i in range(self._max_backups - 1, 0, -1):
            src = Path(f"{sink}.{i}")
            if src.exists():
                src.replace(Path(f"{sink}.{i + 1}"))
        sink.replace(Path(f"{sink}.1"))

    def write_event(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), sort_keys=True, separators=(",", ":"))
        print(line, file=sys.stderr)
        if self._sink_path is None:
            return
        try:
            self._sink_path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate_if_needed(self._sink_path)
            with self._sink_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:  # pragma: no cover
            return

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


def build_event(
    *,
    request_id: str,
    operation: str,
    target_repo: str,
    outcome: str,
    reason: str | None = None,
    status_code: int | None = None,
    duration_ms: int | None = None,
) -> AuditEvent:
    """Construct an audit event stamped with the current UTC time."""
    return AuditEvent(
        timestamp=_now_rfc3339(),
        request_id=request_id,
        operation=operation,
        target_repo=target_repo,
        outcome=outcome,
        reason=reason,
        status_code=status_code,
        duration_ms=duration_ms,
    )
