"""FastAPI dependencies: DB session, current principal from JWT, role guards and injectable collaborators.

SECURITY: Supports JWT from:
1. Authorization header (for API clients)
2. httpOnly cookie (for web frontend)
"""
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from pharmabridge.core.exceptions import BusinessError
from pharmabridge.core.permissions import Principal, Role, ensure_main_admin, ensure_role
from pharmabridge.core.security import decode_access_token
from pharmabridge.db.session import SessionLocal
from pharmabridge.services.identity_service import GoogleIdentityVerifier
from pharmabridge.services.notification_service import NotificationFanout, fanout

security = HTTPBearer(auto_error=False)

TOKEN_COOKIE = "pharmabridge_token"


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Verify the token and turn its claims into a Principal.
    Header takes precedence over cookie.
    """
    token = None
    if credentials:
        token = credentials.credentials
    elif TOKEN_COOKIE in request.cookies:
        token = request.cookies[TOKEN_COOKIE]

    if not token:
        raise BusinessError.unauthorized("Not authenticated", reason="no token")

    claims = decode_access_token(token)
    if not claims:
        raise BusinessError.unauthorized("Invalid or expired token", reason="token rejected")

    try:
        principal = Principal.from_claims(claims)
    except KeyError as e:
        raise BusinessError.unauthorized("Invalid token", reason=f"missing claim {e}")
    if principal.role not in Role.ALL:
        raise BusinessError.unauthorized("Invalid token", reason=f"unknown role {principal.role}")
    return principal


def require_pharmacy(principal: Principal = Depends(get_current_principal)) -> Principal:
    return ensure_role(principal, Role.PHARMACY, message="Pharmacy access required")


def require_wholesaler(principal: Principal = Depends(get_current_principal)) -> Principal:
    return ensure_role(principal, Role.WHOLESALER, message="Wholesaler access required")


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    return ensure_role(principal, *Role.ADMIN_ROLES, message="Admin access required")


def require_main_admin(principal: Principal = Depends(require_admin)) -> Principal:
    return ensure_main_admin(principal)


def get_notifier() -> NotificationFanout:
    return fanout


def get_identity_verifier() -> GoogleIdentityVerifier:
    return GoogleIdentityVerifier()
