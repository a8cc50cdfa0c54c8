"""
Auth Module - Dependencies
===========================
FastAPI dependencies for user authentication and authorization.
These are injected into route handlers via Depends().

The token comes from the Authorization header (API clients) or the
auth_token cookie (browser sessions).
"""

from typing import Optional

from fastapi import Request, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import COOKIE_NAME
from common.exceptions import AuthenticationError, AuthorizationError
from modules.auth.service import auth_service
from modules.user.models import SessionContext


def _extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.cookies.get(COOKIE_NAME)


def get_session_context(request: Request, db: Session = Depends(get_db)) -> Optional[SessionContext]:
    """
    Identify the current user from the request.
    Returns SessionContext or None for anonymous requests.
    """
    token = _extract_token(request)
    if not token:
        return None
    return auth_service.resolve_session(db, token)


def require_login(ctx: Optional[SessionContext] = Depends(get_session_context)) -> SessionContext:
    """Require any authenticated user. Raises 401 if not logged in."""
    if not ctx:
        raise AuthenticationError("Please sign in to continue.")
    return ctx


def require_admin(ctx: SessionContext = Depends(require_login)) -> SessionContext:
    """Only allow canteen admins. Raises 403 otherwise."""
    if not ctx.is_admin:
        raise AuthorizationError("Admin access required.")
    return ctx
