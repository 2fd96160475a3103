"""Bearer token handling (tokens are issued by the auth service)"""
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from typing import Optional
from storefront.config import settings
from storefront.exceptions import AuthenticationRequired
from storefront.services.access import Admin, Anonymous, Customer, Viewer
from storefront.models.user import UserRole
import logging

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def viewer_from_token(token: Optional[str]) -> Viewer:
    """
    Resolve the caller of a request from its bearer token.

    No token means an anonymous caller. A token that fails signature or
    expiry checks, or lacks a usable ``user_id`` claim, is rejected.
    """
    if not token:
        return Anonymous()

    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise AuthenticationRequired("Invalid or expired token") from e

    user_id = claims.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        logger.warning("Rejected bearer token without a user_id claim")
        raise AuthenticationRequired("Invalid or expired token")

    username = claims.get("sub")
    if claims.get("role") == UserRole.ADMIN.value:
        return Admin(user_id=user_id, username=username)
    return Customer(user_id=user_id, username=username)
