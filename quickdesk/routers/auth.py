"""Authentication endpoints: signup, password login, logout, member signup."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from quickdesk.core.config import settings
from quickdesk.core.deps import COOKIE_NAME, get_current_session, get_db, require_csrf_header
from quickdesk.core.errors import AuthError
from quickdesk.core.rate_limit import limiter
from quickdesk.core.security import create_session_token
from quickdesk.db.enums import Role
from quickdesk.db.models import Organization, User
from quickdesk.schemas.auth import (
    LoginRequest,
    MemberSignupRequest,
    MeResponse,
    SignupRequest,
    UserSession,
)
from quickdesk.services import auth_service

router = APIRouter()


def _set_session_cookie(response: Response, user: User, org_id, role: Role) -> None:
    token = create_session_token(user.id, org_id, role.value, user.token_version)
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )


# =============================================================================
# Signup / Login
# =============================================================================

@router.post("/signup", status_code=201)
@limiter.limit(f"{settings.RATE_LIMIT_AUTH}/minute")
def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    db: Session = Depends(get_db),
) -> MeResponse:
    """Create an organization with its owner account and a trial subscription."""
    user, org = auth_service.signup(
        db,
        org_name=body.org_name,
        domain=body.domain,
        name=body.name,
        email=body.email,
        password=body.password,
    )
    db.commit()
    _set_session_cookie(response, user, org.id, Role.OWNER)
    return MeResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        org_id=org.id,
        org_name=org.name,
        role=Role.OWNER,
    )


@router.post("/login")
@limiter.limit(f"{settings.RATE_LIMIT_AUTH}/minute")
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: Session = Depends(get_db),
) -> MeResponse:
    """
    Password login. Failed attempts are committed before the error is
    returned so they count toward the lockout.
    """
    try:
        result = auth_service.login(db, email=body.email, password=body.password)
    except AuthError:
        db.commit()
        raise
    db.commit()

    org = db.get(Organization, result.context.org_id)
    _set_session_cookie(response, result.user, result.context.org_id, result.context.role)
    return MeResponse(
        user_id=result.user.id,
        email=result.user.email,
        name=result.user.name,
        org_id=org.id,
        org_name=org.name,
        role=result.context.role,
        member_id=result.context.member_id,
    )


@router.post("/member-signup", status_code=201)
@limiter.limit(f"{settings.RATE_LIMIT_AUTH}/minute")
def member_signup(
    request: Request,
    body: MemberSignupRequest,
    db: Session = Depends(get_db),
):
    """Complete an invitation: set a password for an INVITED member."""
    user = auth_service.member_signup(db, email=body.email, password=body.password)
    db.commit()
    return {"user_id": str(user.id), "email": user.email}


# =============================================================================
# Session Endpoints
# =============================================================================

@router.get("/me")
def get_me(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> MeResponse:
    org = db.get(Organization, session.org_id)
    return MeResponse(
        user_id=session.user_id,
        email=session.email,
        name=session.name,
        org_id=org.id,
        org_name=org.name,
        role=session.role,
        member_id=session.member_id,
    )


@router.post("/logout", dependencies=[Depends(require_csrf_header)])
def logout(
    response: Response,
    session: UserSession = Depends(get_current_session),
):
    """Clear session cookie. Requires X-Requested-With header for CSRF protection."""
    response.delete_cookie(COOKIE_NAME, path="/")
    return {"status": "logged_out"}
