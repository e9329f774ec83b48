"""FastAPI dependencies: DB session, current user from JWT and role gates.

SECURITY: Supports JWT from:
1. Authorization header (for API clients)
2. httpOnly cookie (for the web frontend)
"""
from typing import Callable, Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from quickpharma.core.audit import AuditLog
from quickpharma.core.config import settings
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.security import decode_access_token
from quickpharma.db.session import SessionLocal
from quickpharma.models.lookup import RoleName
from quickpharma.models.user import User

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    # Header takes precedence over cookie
    if credentials:
        return credentials.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """Extract user ID from the JWT subject."""
    token = _token_from_request(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    sub = decode_access_token(token)
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return int(sub)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
) -> User:
    """Load current user from DB."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[User]:
    """Current user when a valid token is present, else None (public catalog pages)."""
    token = _token_from_request(request, credentials)
    sub = decode_access_token(token) if token else None
    if not sub or not str(sub).isdigit():
        return None
    return db.query(User).filter(User.id == int(sub)).first()


def require_roles(*roles: str) -> Callable[..., User]:
    """
    Dependency factory restricting an endpoint to the given roles.

    Usage:
        current_user: User = Depends(require_roles(RoleName.ADMIN, RoleName.MANAGER))
    """
    allowed = set(roles)

    def checker(request: Request, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role_name not in allowed:
            AuditLog.log_access_denied(
                request.method.lower(), request.url.path, None, current_user.id,
                f"Role {current_user.role_name or 'none'} not in {sorted(allowed)}",
            )
            raise BusinessError.forbidden(f"role {current_user.role_name} on {request.url.path}")
        return current_user

    return checker


require_staff = require_roles(*RoleName.STAFF)
require_admin = require_roles(RoleName.ADMIN)
require_customer = require_roles(RoleName.CUSTOMER)
