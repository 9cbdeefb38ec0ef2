"""
Audit logging for security-critical operations.

Authentication attempts, workflow transitions and admin actions are written
as JSON lines to the "audit" logger so they can be shipped separately from
application logs. Passwords and tokens are never logged.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

audit_logger = logging.getLogger("audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditLog:
    """Central audit logging for security-critical events."""

    @staticmethod
    def log_authentication(
        action: str,  # "login", "register", "federated_login"
        role: str,
        username: str,
        success: bool,
        reason: str = "",
    ):
        """
        Usage:
            AuditLog.log_authentication("login", "pharmacy", "corner-rx", False, reason="inactive")
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": f"auth.{action}",
            "role": role,
            "username": username,
            "success": success,
        }
        if reason and not success:
            log_entry["reason"] = reason

        if success:
            audit_logger.info(json.dumps(log_entry))
        else:
            audit_logger.warning(json.dumps(log_entry))

    @staticmethod
    def log_action(
        action: str,  # "create", "approve", "reject", "cancel", "activate", ...
        resource_type: str,  # "request", "product", "pharmacy", "wholesaler", "admin", "inventory"
        resource_id: str,
        actor_role: str,
        actor_id: Optional[str],
        changes: Optional[Dict[str, Any]] = None,
    ):
        log_entry = {
            "timestamp": _now(),
            "event_type": f"{resource_type}.{action}",
            "actor_role": actor_role,
            "actor_id": actor_id,
            "resource_id": resource_id,
        }
        if changes:
            log_entry["changes"] = changes

        audit_logger.info(json.dumps(log_entry, default=str))

    @staticmethod
    def log_access_denied(
        action: str,
        resource_type: str,
        resource_id: str,
        actor_id: Optional[str],
        reason: str,
    ):
        """
        Track attempts on rows the caller does not own (IDOR probing).

        Usage:
            AuditLog.log_access_denied("approve", "request", "REQ-2026-00AB12", "WHO-2026-1F2E3D", "foreign wholesaler")
        """
        log_entry = {
            "timestamp": _now(),
            "event_severity": "WARNING",
            "event_type": "access_denied",
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "actor_id": actor_id,
            "reason": reason,
        }
        audit_logger.warning(json.dumps(log_entry))
