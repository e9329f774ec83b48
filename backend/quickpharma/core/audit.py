"""
Security audit trail.

Each event is one JSON document on the "audit" logger, ready to be shipped to
centralized logging. This is process logging only; the activity log users
see lives in the logs table (services/log_service.py).

Passwords, tokens and prescription documents never appear in an event.
"""
import json
import logging
from typing import Any, Dict, Optional

from quickpharma.core.clock import utc_now
from quickpharma.models.user import User

audit_logger = logging.getLogger("audit")


def _emit(level: int, event_type: str, **fields: Any) -> None:
    entry = {"timestamp": utc_now().isoformat(), "event_type": event_type}
    entry.update({key: value for key, value in fields.items() if value is not None})
    audit_logger.log(level, json.dumps(entry, default=str))


class AuditLog:
    """Entry points for the audit events the API emits."""

    @staticmethod
    def log_authentication(action: str, email: str, ip_address: str, success: bool, reason: str = ""):
        """
        action is one of "login", "logout", "register", "failed_login".

        Usage:
            AuditLog.log_authentication("login", "noor@example.com", "10.0.0.4", True)
        """
        _emit(
            logging.INFO if success else logging.WARNING,
            f"auth.{action}",
            email=email,
            ip_address=ip_address,
            success=success,
            reason=reason if reason and not success else None,
        )

    @staticmethod
    def log_failed_login_attempt(email: str, ip_address: str, attempt_count: int = 1):
        _emit(logging.WARNING, "auth.failed_login_attempt", email=email, ip_address=ip_address,
              attempt_count=attempt_count)

    @staticmethod
    def log_action(
        action: str,
        resource_type: str,
        resource_id: Optional[int],
        user: User,
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Business-critical mutation by a signed-in user: approvals, checkout,
        stock changes, supplier orders, deliveries.

        Usage:
            AuditLog.log_action("approve", "prescription", 123, current_user)
            AuditLog.log_action("dispose", "inventory", 456, current_user, changes={"quantity": 12})
        """
        _emit(
            logging.INFO,
            f"{resource_type}.{action}",
            user_id=user.id,
            role=user.role_name,
            branch_id=user.branch_id,
            resource_id=resource_id,
            changes=changes,
        )

    @staticmethod
    def log_access_denied(action: str, resource_type: str, resource_id: Optional[int], user_id: int, reason: str):
        """Cross-branch and cross-customer access attempts."""
        _emit(
            logging.WARNING,
            "access_denied",
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            reason=reason,
        )
