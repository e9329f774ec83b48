"""Auth: register and login with security hardening.

SECURITY FEATURES:
- Password hashing with bcrypt
- Password strength validation
- httpOnly, Secure, SameSite cookies
- Consecutive failed logins counted per account
"""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_current_user, get_db
from quickpharma.core.audit import AuditLog
from quickpharma.core.config import settings
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.security import create_access_token, get_password_hash, verify_password
from quickpharma.models.lookup import Role, RoleName
from quickpharma.models.user import User
from quickpharma.schemas.user import Token, UserCreate, UserLogin, UserResponse
from quickpharma.services import log_service

router = APIRouter()

SPECIAL_CHARS = "!@#$%^&*()-_=+[]{}|;:',.<>?/"


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _password_problem(password: str) -> str:
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        return f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters"
    if settings.REQUIRE_SPECIAL_CHARS and not any(c in SPECIAL_CHARS for c in password):
        return "Password must contain at least one special character (!@#$%^&*)"
    if settings.REQUIRE_NUMBERS and not any(c.isdigit() for c in password):
        return "Password must contain at least one number"
    return ""


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(data: UserCreate, request: Request, db: Session = Depends(get_db)):
    """
    Register a new customer account.

    Password requirements:
    - Minimum 8 characters
    - At least one special character (!@#$%^&*)
    - At least one number
    """
    email = data.email.lower()
    if db.query(User).filter(User.email == email).first():
        AuditLog.log_authentication("register", email, _client_ip(request), False, "duplicate email")
        raise BusinessError.conflict("Email already registered")

    problem = _password_problem(data.password)
    if problem:
        raise BusinessError.bad_request(problem)

    role = db.query(Role).filter(Role.name == RoleName.CUSTOMER).first()
    if not role:
        raise BusinessError.server_error(RuntimeError("Customer role is not seeded"))

    user = User(
        email=email,
        hashed_password=get_password_hash(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        contact_number=data.contact_number,
        role_id=role.id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    AuditLog.log_authentication("register", email, _client_ip(request), True)
    return user


@router.post("/login", response_model=Token)
def login(data: UserLogin, request: Request, response: Response, db: Session = Depends(get_db)):
    """
    Login and set the token in an httpOnly cookie.

    The third consecutive failure for an account writes a Login Failure
    activity log. The error message is the same whichever field is wrong.
    """
    email = data.email.lower()
    ip = _client_ip(request)
    user = db.query(User).filter(User.email == email).first()

    if not user or not verify_password(data.password, user.hashed_password):
        AuditLog.log_authentication("failed_login", email, ip, False, "invalid credentials")
        if user:
            user.failed_login_count = (user.failed_login_count or 0) + 1
            attempts = user.failed_login_count
            db.commit()
            AuditLog.log_failed_login_attempt(email, ip, attempts)
            if attempts == settings.MAX_FAILED_LOGINS:
                log_service.create_login_failure_log(db, email)
        raise BusinessError.unauthorized(f"login failed for {email}")

    if user.failed_login_count:
        user.failed_login_count = 0
        db.commit()

    token = create_access_token(subject=str(user.id), role=user.role_name)

    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        secure=settings.SECURE_COOKIES,
        httponly=True,
        samesite=settings.SAME_SITE_COOKIE,
        domain=None,
    )
    AuditLog.log_authentication("login", email, ip, True)

    return Token(access_token=token, role=user.role_name, user_id=user.id)


@router.post("/logout")
def logout(request: Request, response: Response, current_user: User = Depends(get_current_user)):
    """Logout by clearing the httpOnly cookie."""
    response.delete_cookie(
        key=settings.AUTH_COOKIE_NAME,
        secure=settings.SECURE_COOKIES,
        httponly=True,
        samesite=settings.SAME_SITE_COOKIE,
    )
    AuditLog.log_authentication("logout", current_user.email, _client_ip(request), True)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    """Get current authenticated user."""
    return current_user
