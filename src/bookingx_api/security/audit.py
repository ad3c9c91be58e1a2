"""
Audit Logging System.
Created: 2026-02-20

Append-only audit trail for credential lifecycle events: client registration,
secret rotation, API key creation/revocation, token issuance and revocation.

Events go to the "audit" logger and, when a path is configured, to a JSONL
file. Callers must never pass plaintext secrets or tokens as context.
"""

import json
import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger("audit")


class AuditSeverity(str, Enum):
    INFO = "info"  # Normal operation (e.g. token issued)
    WARNING = "warning"  # Credential removed or disabled
    ALERT = "alert"  # Security violation


@dataclass
class AuditEvent:
    """A single audit log entry."""

    id: str
    timestamp: str
    severity: AuditSeverity
    actor: str  # user_id, client_id or "system"
    action: str  # e.g. "oauth_token", "api_key_created"
    target: str  # e.g. "client:bkx_...", "key:bkx_..."
    status: str  # "success", "error"
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        severity: AuditSeverity,
        actor: str,
        action: str,
        target: str,
        status: str,
        **context: Any,
    ) -> "AuditEvent":
        return cls(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(tz=UTC).isoformat(),
            severity=severity,
            actor=actor,
            action=action,
            target=target,
            status=status,
            context=context,
        )


class AuditLogger:
    """
    Append-only audit logger.
    Writes JSONL to *log_path* when given.
    """

    def __init__(self, log_path: Path | None = None):
        self.log_path = log_path
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[dict], None]] = []

    def on_log(self, callback: Callable[[dict], None]) -> None:
        """Register a callback to be called after each audit log write."""
        self._callbacks.append(callback)

    def log(self, event: AuditEvent) -> None:
        """Write an event to the audit log."""
        event_dict = asdict(event)
        logger.info("%s %s -> %s (%s)", event.actor, event.action, event.target, event.status)
        if self.log_path is not None:
            try:
                with self._lock, open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event_dict) + "\n")
            except OSError as e:
                # Fallback to system logger if audit fails (critical failure)
                logger.critical(f"FAILED TO WRITE AUDIT LOG: {e} | Event: {event}")
        for cb in self._callbacks:
            try:
                cb(event_dict)
            except Exception:
                logger.exception("Audit callback failed")

    def log_api_event(
        self,
        action: str,
        target: str,
        actor: str | None = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        status: str = "success",
        **context: Any,
    ) -> str:
        """Helper to log a credential lifecycle event."""
        event = AuditEvent.create(
            severity=severity,
            actor=actor or "system",
            action=action,
            target=target,
            status=status,
            **context,
        )
        self.log(event)
        return event.id


# Singleton
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    global _audit_logger
    if _audit_logger is None:
        from bookingx_api.config import get_settings

        _audit_logger = AuditLogger(get_settings().audit_log_path)
    return _audit_logger


def set_audit_logger(audit: AuditLogger | None) -> None:
    """Install (or with None, reset) the process-wide audit logger."""
    global _audit_logger
    _audit_logger = audit
