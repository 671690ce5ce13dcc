"""
Auth Module - Dependencies
===========================
FastAPI dependencies resolving who the current actor is.
These are injected into route handlers via Depends().

Authentication itself happens upstream: the gateway sets USER_ID_HEADER for a
logged-in user and STAFF_ID_HEADER for back-office staff. Anonymous visitors
are identified by the cart session cookie, which is issued here on first use.
"""

import secrets

from fastapi import Request, Response, Depends, HTTPException, status

from common.helpers import safe_int
from common.owner import OwnerKey, AuthenticatedOwner, GuestOwner
from config.settings import CART_SESSION_COOKIE, USER_ID_HEADER, STAFF_ID_HEADER, COOKIE_SECURE

SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days


def get_user_id(request: Request):
    """Authenticated user id from the gateway header, or None."""
    user_id = safe_int(request.headers.get(USER_ID_HEADER))
    return user_id if user_id and user_id > 0 else None


def get_cart_session_id(request: Request, response: Response) -> str:
    """Guest session id from the cookie; a fresh one is issued when missing."""
    session_id = request.cookies.get(CART_SESSION_COOKIE)
    if not session_id:
        session_id = secrets.token_hex(16)
        response.set_cookie(
            CART_SESSION_COOKIE, session_id,
            max_age=SESSION_COOKIE_MAX_AGE, httponly=True, samesite="lax", secure=COOKIE_SECURE,
        )
    return session_id


def get_owner(
    request: Request,
    response: Response,
    user_id=Depends(get_user_id),
) -> OwnerKey:
    """
    Exactly one owner key per request: the user when logged in, else the guest
    session. The guest cookie is only issued to anonymous visitors.
    """
    if user_id:
        return AuthenticatedOwner(user_id)
    return GuestOwner(get_cart_session_id(request, response))


def require_login(user_id=Depends(get_user_id)) -> AuthenticatedOwner:
    """Require an authenticated user. Raises 401 if not logged in."""
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login_required")
    return AuthenticatedOwner(user_id)


def require_staff(request: Request) -> int:
    """Only allow back-office staff. Raises 403 otherwise."""
    staff_id = safe_int(request.headers.get(STAFF_ID_HEADER))
    if not staff_id or staff_id <= 0:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return staff_id
