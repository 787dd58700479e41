"""
Audit logging for Sphinx Bounties.

Security events go to the ``audit`` logger as one JSON object per line.
Pubkeys are truncated and signatures are never logged.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_logger = logging.getLogger("audit")
_audit_logger = None  # Will be initialized by init_audit_logger


def init_audit_logger():
    """Initialize the audit logger."""
    global _audit_logger

    _logger.setLevel(logging.INFO)

    # Add console handler if not already present
    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - AUDIT - %(levelname)s - %(message)s"))
        _logger.addHandler(handler)

    _audit_logger = AuditLogger()
    _logger.debug("Audit logger initialized")


def get_audit_logger():
    """Get the audit logger instance."""
    global _audit_logger

    if _audit_logger is None:
        init_audit_logger()
    return _audit_logger


def _truncate(value: Optional[str], keep: int = 16) -> Optional[str]:
    if not value:
        return value
    return value if len(value) <= keep else f"{value[:keep]}..."


class AuditLogger:
    """
    Audit logging interface for authentication events.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or _logger

    def log_event(self, event: str, **details: Any) -> None:
        """Generic structured audit event."""

        if "pubkey" in details:
            details["pubkey"] = _truncate(details["pubkey"])
        payload = {"event": event, **details, "timestamp": datetime.now(timezone.utc).isoformat()}
        self.logger.info(json.dumps(payload, default=str))

    def log_session_created(self, pubkey: str, expires_at: int):
        """Log session creation."""
        self.logger.info(f"SESSION_CREATED | pubkey={_truncate(pubkey)} | exp={expires_at}")

    def log_access_denied(self, path: str, outcome: str, request_id: str, pubkey: Optional[str] = None):
        """Log a gate denial."""
        self.logger.warning(
            f"ACCESS_DENIED | path={path} | outcome={outcome} | request_id={request_id} | pubkey={_truncate(pubkey) or '-'}"
        )

    def log_security_event(self, event_type: str, severity: str, details: Dict[str, Any]):
        """Log security event."""
        self.logger.warning(f"SECURITY_EVENT | type={event_type} | severity={severity} | details={details}")

    def log_rate_limit_exceeded(self, ip_address: str, endpoint: str):
        """Log rate limit violation."""
        self.logger.warning(f"RATE_LIMIT_EXCEEDED | ip={ip_address} | endpoint={endpoint}")
