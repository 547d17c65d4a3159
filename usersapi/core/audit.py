"""Audit logging for user account mutations."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
from pathlib import Path
from typing import Any, Literal

logger = logging.getLogger(__name__)

EventType = Literal["user_created", "user_updated", "user_deleted"]

AUDIT_LOG_FILENAME = "user-events.jsonl"


class AuditTrail:
    """Append-only JSONL audit trail with HMAC-SHA256 signed events."""

    def __init__(self, log_dir: str | Path, signing_key: str = ""):
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / AUDIT_LOG_FILENAME
        self._signing_key = signing_key.strip().encode("utf-8")

    def _ensure_audit_dir(self) -> None:
        """Create audit directory with restricted permissions."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.chmod(0o700)

    def _sign_event(self, event: dict[str, Any]) -> str:
        """Generate HMAC-SHA256 signature for audit event."""
        if not self._signing_key:
            return ""
        # Canonical JSON representation for signing
        canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
        return hmac.new(self._signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    def log_user_event(
        self,
        event_type: EventType,
        user_id: int,
        *,
        operator: str = "system",
        details: dict[str, Any] | None = None,
        success: bool = True,
    ) -> None:
        """Log a user event to the audit trail with timestamp and signature.

        Args:
            event_type: Type of operation (user_created, user_updated, user_deleted)
            user_id: Target user affected by the operation
            operator: Who performed the operation
            details: Additional context (changed fields, reassignment, ...)
            success: Whether the operation succeeded
        """
        self._ensure_audit_dir()

        event = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event_type": event_type,
            "user_id": user_id,
            "operator": operator,
            "success": success,
            "details": details or {},
        }

        signature = self._sign_event(event)
        if signature:
            event["signature"] = signature

        with self.log_file.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")

        self.log_file.chmod(0o600)

    def safe_log_user_event(self, event_type: EventType, user_id: int, **kwargs: Any) -> bool:
        """Log a user event, never raising.

        Returns:
            True if event was logged successfully, False if logging failed
        """
        try:
            self.log_user_event(event_type, user_id, **kwargs)
            return True
        except Exception as e:
            logger.warning("[audit] Failed to log %s event for user %s: %s", event_type, user_id, e)
            return False

    def verify(self) -> tuple[int, int]:
        """Verify all signatures in the audit log.

        Returns:
            Tuple of (total_events, valid_signatures)
        """
        if not self.log_file.exists():
            return 0, 0

        total = 0
        valid = 0

        with self.log_file.open("r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                total += 1
                try:
                    event = json.loads(line)
                    stored_sig = event.pop("signature", "")
                    if not stored_sig:
                        continue
                    computed_sig = self._sign_event(event)
                    if hmac.compare_digest(stored_sig, computed_sig):
                        valid += 1
                except (json.JSONDecodeError, KeyError):
                    continue

        return total, valid
