"""Append-only audit logger in JSON lines format."""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from bashscan.core.safety.scanner import ScanResult

logger = structlog.get_logger()

_MAX_VALUE_LENGTH = 500


class AuditLogger:
    def __init__(self, log_path: Path | str) -> None:
        self._path = Path(log_path)

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, entry: dict[str, Any]) -> None:
        entry["timestamp"] = datetime.now(UTC).isoformat()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.error("audit_write_failed", path=str(self._path), error=str(e))

    def log_decision(
        self,
        session_id: str,
        tool_name: str,
        decision: str,
        *,
        command: str | None = None,
        reason: str | None = None,
        category: str | None = None,
        scan: ScanResult | None = None,
    ) -> None:
        entry: dict[str, Any] = {
            "event": "hook_decision",
            "session_id": session_id,
            "tool_name": tool_name,
            "decision": decision,
        }
        if command is not None:
            entry["command"] = _truncate(command)
        if reason:
            entry["reason"] = reason
        if category is not None:
            entry["category"] = category
        if scan is not None:
            entry["violations"] = [v.message for v in scan.violations]
            entry["safe_operations"] = scan.safe_operations
        self._write(entry)


def _truncate(value: str) -> str:
    """Truncate large commands for audit readability."""
    if len(value) > _MAX_VALUE_LENGTH:
        return value[:_MAX_VALUE_LENGTH] + "...[truncated]"
    return value
