from typing import Any, Callable, Dict

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from eventskona.core.database import get_db
from eventskona.core.errors import RateLimitExceeded, forbidden, not_found, unauthorized
from eventskona.core.rate_limit import RateLimitConfig, check_rate_limit, get_client_ip
from eventskona.core.security import (
    ensure_token_secrets,
    extract_bearer_token,
    verify_access_token,
    verify_admin_token,
)
from eventskona.models.user import User
from eventskona.services.admin_auth import has_permission


def require_token_secrets() -> None:
    """Fail with a controlled 500 before any work when token secrets are unset"""
    ensure_token_secrets()


def get_token_payload(request: Request) -> Dict[str, Any]:
    """
    Decoded access-token claims for the request.

    Invalid and expired tokens get the same 401 so clients branch on one case.
    """
    token = extract_bearer_token(request.headers.get("authorization"))
    if token is None:
        raise unauthorized("Missing authentication token")

    payload = verify_access_token(token)
    if payload is None:
        raise unauthorized("Invalid or expired token")

    request.state.user = payload
    return payload


async def get_current_user(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> User:
    """Database row for the token's subject; 404 if it no longer exists"""
    try:
        user_id = int(payload["sub"])
    except (KeyError, ValueError, TypeError):
        raise unauthorized("Invalid or expired token")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise not_found("User not found")
    return user


def require_roles(*roles: str) -> Callable[..., Dict[str, Any]]:
    """Dependency factory: the token's role must be one of roles"""
    def checker(payload: Dict[str, Any] = Depends(get_token_payload)) -> Dict[str, Any]:
        if payload.get("role") not in roles:
            raise forbidden(f"This action requires one of these roles: {', '.join(roles)}")
        return payload
    return checker


def rate_limit(config: RateLimitConfig) -> Callable[..., None]:
    """
    Dependency factory: fixed-window limit keyed by client IP and path.

    Listed first in a route's dependencies so throttled requests stop
    before authentication or body handling.
    """
    def limiter(request: Request, response: Response) -> None:
        identifier = f"{get_client_ip(request)}:{request.url.path}"
        result = check_rate_limit(identifier, config)
        if not result.allowed:
            raise RateLimitExceeded(result.retry_after)

        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_at)
    return limiter


# =====================
# Admin dashboard
# =====================

def get_current_admin(request: Request) -> Dict[str, Any]:
    token = extract_bearer_token(request.headers.get("authorization"))
    if token is None:
        raise unauthorized("Missing admin authentication token")

    payload = verify_admin_token(token)
    if payload is None:
        raise unauthorized("Invalid or expired admin token")

    request.state.admin = payload
    return payload


def require_admin_roles(*roles: str) -> Callable[..., Dict[str, Any]]:
    def checker(admin: Dict[str, Any] = Depends(get_current_admin)) -> Dict[str, Any]:
        if admin.get("role") not in roles:
            raise forbidden(f"This action requires one of these admin roles: {', '.join(roles)}")
        return admin
    return checker


def require_admin_permission(resource: str, action: str) -> Callable[..., Dict[str, Any]]:
    def checker(admin: Dict[str, Any] = Depends(get_current_admin)) -> Dict[str, Any]:
        if not has_permission(admin.get("role"), resource, action):
            raise forbidden(f"Missing permission {resource}:{action}")
        return admin
    return checker
