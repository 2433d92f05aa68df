"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from quickdesk.core.config import settings
from quickdesk.core.security import decode_session_token, verify_secret
from quickdesk.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "qd_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"
INTERNAL_SECRET_HEADER = "X-Internal-Secret"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get authenticated user from session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists and is active
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    # Import here to avoid circular imports
    from quickdesk.db.models import User
    import jwt

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.get(User, _parse_uuid(payload.get("sub")))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    # Token version check (revocation support)
    if user.token_version != payload.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")

    return user


def get_current_session(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get full session context: user_id, org_id, role.

    This is the PRIMARY auth dependency for most endpoints.
    The role is re-derived from the database on every request, so a
    revoked membership takes effect without waiting for token expiry.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: No organization context
    """
    from quickdesk.schemas.auth import UserSession
    from quickdesk.services import auth_service

    user = get_current_user(request, db)
    context = auth_service.resolve_org_context(db, user)
    if context is None:
        raise HTTPException(status_code=403, detail="No organization membership")

    return UserSession(
        user_id=user.id,
        org_id=context.org_id,
        role=context.role,
        email=user.email,
        name=user.name,
        member_id=context.member_id,
    )


def require_roles(allowed_roles: list):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.post("/members", dependencies=[Depends(require_roles([Role.OWNER]))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action"
            )
        return session
    return dependency


def require_staff(request: Request, db: Session = Depends(get_db)):
    """Owner or agent; client contacts are refused."""
    from quickdesk.db.enums import Role

    return require_roles([Role.OWNER, Role.AGENT])(request, db)


def require_owner(request: Request, db: Session = Depends(get_db)):
    from quickdesk.db.enums import Role

    return require_roles([Role.OWNER])(request, db)


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PATCH, PUT, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )


def require_internal_secret(
    x_internal_secret: str | None = Header(default=None, alias=INTERNAL_SECRET_HEADER),
) -> None:
    """Guard for cron-driven /internal/scheduled/* endpoints."""
    if not verify_secret(x_internal_secret, settings.INTERNAL_SECRET):
        raise HTTPException(status_code=403, detail="Invalid internal secret")


def _parse_uuid(value):
    from uuid import UUID

    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid session")
