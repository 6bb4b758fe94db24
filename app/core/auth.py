"""
Authentication utilities for Supabase JWT verification.

The frontend signs users in with Supabase and sends the JWT in the
Authorization header. This module verifies the JWT and extracts the user's
role and the tenant it is bound to (an operator organization or a vendor).
"""
from typing import Optional

import requests
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import settings
from app.core.errors import Forbidden, Unauthorized
from app.models.enums import UserRole

# auto_error=False so a missing header is reported as our own 401
security = HTTPBearer(auto_error=False)


class User:
    """User model extracted from JWT token."""
    def __init__(
        self,
        user_id: str,
        email: Optional[str],
        role: Optional[str] = None,
        organization_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
    ):
        self.id = user_id
        self.email = email
        self.role = (role or UserRole.OPERATOR.value).upper()
        self.organization_id = organization_id
        self.vendor_id = vendor_id

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_operator(self) -> bool:
        return self.role == UserRole.OPERATOR.value

    @property
    def is_vendor(self) -> bool:
        return self.role == UserRole.VENDOR.value


# Cache for JWKS keys (to avoid fetching on every request)
_jwks_cache = None


def get_supabase_jwks():
    """
    Fetch Supabase's JSON Web Key Set (JWKS) for JWT verification.

    Only used when no shared HS256 secret is configured. Newer Supabase
    projects sign with ES256/RS256, so we need their public keys.
    """
    global _jwks_cache

    if _jwks_cache is not None:
        return _jwks_cache

    if not settings.SUPABASE_URL:
        raise Unauthorized("Token verification is not configured")

    jwks_url = f"{settings.SUPABASE_URL}/auth/v1/.well-known/jwks.json"
    try:
        response = requests.get(jwks_url, timeout=10)
        response.raise_for_status()
    except requests.RequestException as e:
        raise Unauthorized(f"Failed to fetch JWKS from Supabase: {e}")
    _jwks_cache = response.json()
    return _jwks_cache


def verify_token(token: str) -> dict:
    """
    Verify a Supabase JWT and return the decoded payload.

    HS256 with ``SUPABASE_JWT_SECRET`` when the secret is set, otherwise
    ES256/RS256 against the project's JWKS.

    Raises:
        Unauthorized: If the token is invalid or expired
    """
    if settings.SUPABASE_JWT_SECRET:
        key, algorithms = settings.SUPABASE_JWT_SECRET, ["HS256"]
    else:
        key, algorithms = get_supabase_jwks(), ["ES256", "RS256"]

    try:
        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=settings.JWT_AUDIENCE,
            options={"verify_aud": True},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except JWTError as e:
        raise Unauthorized(f"Invalid authentication credentials: {e}")


def _optional_int(value) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise Unauthorized("Malformed tenant claim in token")


def user_from_claims(payload: dict) -> User:
    # Custom claims live in app_metadata when set through Supabase admin APIs
    meta = payload.get("app_metadata") or {}
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Could not validate user")

    return User(
        user_id=user_id,
        email=payload.get("email"),
        role=meta.get("role") or payload.get("user_role"),
        organization_id=_optional_int(meta.get("organization_id", payload.get("organization_id"))),
        vendor_id=_optional_int(meta.get("vendor_id", payload.get("vendor_id"))),
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """
    FastAPI dependency to get current authenticated user from JWT token.

    Usage in route:
        @router.get("/protected")
        def protected_route(current_user: User = Depends(get_current_user)):
            ...
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Not authenticated")
    return user_from_claims(verify_token(credentials.credentials))


def require_role(*roles: UserRole):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/{request_id}/dispatch")
        def dispatch(current_user: User = Depends(require_role(UserRole.ADMIN))):
            ...
    """
    allowed = {r.value for r in roles}

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise Forbidden(
                f"Insufficient permissions. Required role: {' or '.join(sorted(allowed))}"
            )
        return current_user
    return role_checker
