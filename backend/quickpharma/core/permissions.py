"""
Branch isolation rules for staff.

Admins see every branch. Managers, pharmacists and drivers are confined to
the branch on their account; staff without a branch see nothing.
"""
from typing import Optional

from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.models.lookup import RoleName
from quickpharma.models.user import User


def is_admin(user: User) -> bool:
    return user.role_name == RoleName.ADMIN


def staff_branch_scope(user: User, resource_type: str = "branch_data") -> Optional[int]:
    """Branch id a staff member is restricted to, or None for admins.

    Raises 403 for non-admin staff that have no branch assigned.
    """
    if is_admin(user):
        return None
    if not user.branch_id:
        AuditLog.log_access_denied("read", resource_type, None, user.id, "Employee has no branch")
        raise BusinessError.forbidden(f"user {user.id} has no branch")
    return user.branch_id


def ensure_same_branch(user: User, branch_id: Optional[int], resource_type: str, resource_id: int) -> None:
    scope = staff_branch_scope(user, resource_type)
    if scope is not None and branch_id != scope:
        AuditLog.log_access_denied("read", resource_type, resource_id, user.id, "Different branch")
        raise BusinessError.forbidden(f"user {user.id} outside branch {branch_id}")


def ensure_self(user: User, user_id: int, resource_type: str) -> None:
    """Customers may only act on their own records."""
    if user.id != user_id:
        AuditLog.log_access_denied("write", resource_type, user_id, user.id, "Different user")
        raise BusinessError.forbidden(f"user {user.id} acting for user {user_id}")
