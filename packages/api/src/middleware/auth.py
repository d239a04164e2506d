# This project was developed with assistance from AI tools.
"""
JWT authentication middleware for Keycloak OIDC.

Validates Bearer tokens against Keycloak's JWKS endpoint, extracts user
identity, role, approval level and permissions, and provides FastAPI
dependencies for route-level auth.

Set AUTH_DISABLED=true to bypass validation (tests / local dev without Keycloak).
"""

import logging
import time
from typing import Annotated

import httpx
import jwt
from db.enums import UserRole
from fastapi import Depends, HTTPException, Request, status

from ..core.auth import ROLE_PERMISSIONS, build_data_scope, default_permissions
from ..core.config import settings
from ..schemas.auth import DataScope, TokenPayload, UserContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JWKS cache
# ---------------------------------------------------------------------------

_jwks_data: dict | None = None
_jwks_fetched_at: float = 0


def _realm_url() -> str:
    return f"{settings.KEYCLOAK_URL}/realms/{settings.KEYCLOAK_REALM}"


def _fetch_jwks() -> dict:
    """Fetch the realm's JSON Web Key Set. Raises on failure."""
    response = httpx.get(f"{_realm_url()}/protocol/openid-connect/certs", timeout=5)
    response.raise_for_status()
    return response.json()


def _get_jwks(force_refresh: bool = False) -> dict:
    """Cached JWKS, refetched after JWKS_CACHE_TTL seconds or on demand."""
    global _jwks_data, _jwks_fetched_at  # noqa: PLW0603

    now = time.time()
    stale = (now - _jwks_fetched_at) > settings.JWKS_CACHE_TTL
    if _jwks_data is None or force_refresh or stale:
        _jwks_data = _fetch_jwks()
        _jwks_fetched_at = now
    return _jwks_data


def _find_key(jwks: dict, kid: str | None) -> jwt.PyJWK | None:
    return next((key for key in jwt.PyJWKSet.from_dict(jwks).keys if key.key_id == kid), None)


def _get_signing_key(token: str) -> jwt.PyJWK:
    """Signing key for ``token``; an unknown kid refetches the set once (key rotation)."""
    kid = jwt.get_unverified_header(token).get("kid")
    try:
        key = _find_key(_get_jwks(), kid) or _find_key(_get_jwks(force_refresh=True), kid)
    except httpx.HTTPError as exc:
        logger.error("Keycloak JWKS unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable",
        ) from exc
    if key is None:
        raise jwt.InvalidTokenError(f"No signing key for kid={kid}")
    return key


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------

def _extract_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme == "Bearer" and token:
        return token
    return None


def _decode_token(token: str) -> TokenPayload:
    """Verify an RS256 token issued by the cooperative realm."""
    payload = jwt.decode(
        token,
        _get_signing_key(token).key,
        algorithms=["RS256"],
        issuer=_realm_url(),
        options={"verify_aud": False},
    )
    return TokenPayload(**payload)


def _resolve_role(token_payload: TokenPayload) -> UserRole:
    """Extract the primary role from realm_access.roles.

    When a user holds several cooperative roles the most privileged one
    wins (order of ``ROLE_PERMISSIONS``).
    """
    roles = set(token_payload.realm_access.get("roles", []))

    user_roles = [role for role in ROLE_PERMISSIONS if role.value in roles]

    if not user_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No recognized role assigned",
        )

    if len(user_roles) > 1:
        logger.warning(
            "User %s has multiple roles %s, using: %s",
            token_payload.sub,
            [r.value for r in user_roles],
            user_roles[0].value,
        )

    return user_roles[0]


def _resolve_permissions(token_payload: TokenPayload, role: UserRole) -> frozenset[str]:
    """Explicit ``permissions`` claim wins; otherwise the role's defaults."""
    if token_payload.permissions is not None:
        return frozenset(token_payload.permissions)
    return default_permissions(role)


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

_DISABLED_USER = UserContext(
    user_id="dev-user",
    role=UserRole.SUPER_ADMIN,
    email="dev@coop-ledger.local",
    name="Dev User",
    permissions=default_permissions(UserRole.SUPER_ADMIN),
    data_scope=DataScope(full_access=True),
)


async def get_current_user(request: Request) -> UserContext:
    """FastAPI dependency: validate JWT and return UserContext.

    When AUTH_DISABLED=true, returns a dev super-admin without token validation.
    """
    if settings.AUTH_DISABLED:
        return _DISABLED_USER

    token = _extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = _decode_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    role = _resolve_role(payload)

    return UserContext(
        user_id=payload.sub,
        role=role,
        email=payload.email,
        name=payload.name or payload.preferred_username,
        approval_level=payload.approval_level,
        permissions=_resolve_permissions(payload, role),
        data_scope=build_data_scope(role, payload.sub),
    )


# Type alias for use in route signatures
CurrentUser = Annotated[UserContext, Depends(get_current_user)]


def require_roles(*allowed_roles: UserRole):
    """Dependency factory: restrict a route to specific roles.

    Usage:
        @router.get("/staff-only", dependencies=[Depends(require_roles(UserRole.ADMIN))])
    """

    async def _check(user: CurrentUser) -> UserContext:
        if user.role not in allowed_roles:
            logger.warning(
                "RBAC denied: user=%s role=%s attempted route requiring %s",
                user.user_id,
                user.role.value,
                [r.value for r in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _check


def require_permission(permission: str):
    """Dependency factory: restrict a route to callers holding ``permission``.

    Roles grant their default permissions; a token's claims may narrow them.
    """

    async def _check(user: CurrentUser) -> UserContext:
        if permission not in user.permissions:
            logger.warning(
                "Permission denied: user=%s role=%s lacks %s",
                user.user_id,
                user.role.value,
                permission,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _check
