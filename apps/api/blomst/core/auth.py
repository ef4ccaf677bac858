"""JWT authentication for the portal API using JWKS."""

import asyncio
from collections.abc import Callable, Coroutine
from typing import Annotated, Any
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient, PyJWKClientError

from blomst.core.config import settings
from blomst.schemas.order import Actor, ActorRole

# HTTP Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)

# JWKS client for fetching the portal's public keys
_jwks_client: PyJWKClient | None = None
_jwks_lock = asyncio.Lock()

PORTAL_ROLES = (ActorRole.ADMIN, ActorRole.PARTNER)


def get_jwks_client() -> PyJWKClient:
    """Get or create JWKS client."""
    global _jwks_client
    if _jwks_client is None:
        if settings.auth_jwks_url:
            jwks_url = settings.auth_jwks_url
        else:
            jwks_url = f"{settings.auth_url}/api/auth/jwks"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


async def verify_token(token: str) -> dict[str, Any]:
    """Verify a portal JWT against the JWKS endpoint.

    Args:
        token: The JWT token to verify

    Returns:
        The decoded token payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        jwks_client = get_jwks_client()
        signing_key = jwks_client.get_signing_key_from_jwt(token)

        payload: dict[str, Any] = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth_url,
            issuer=settings.auth_url,
            options={
                "verify_exp": True,
                "verify_iat": True,
                "verify_aud": True,
                "verify_iss": True,
            },
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except PyJWKClientError as e:
        # Reset cached client so next request retries fresh
        async with _jwks_lock:
            global _jwks_client
            _jwks_client = None
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Authentication service unavailable. Unable to verify token: {str(e)}",
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    """Get current authenticated user from JWT token.

    Returns:
        The decoded JWT payload containing user information

    Raises:
        HTTPException: If no token provided or token is invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await verify_token(credentials.credentials)


def actor_from_claims(user: dict[str, Any]) -> Actor:
    """Map token claims to the actor recorded in the order audit trail.

    Only ``admin`` and ``partner`` roles may use the portal; a partner token
    must carry a valid ``partner_id``.
    """
    try:
        role = ActorRole(str(user.get("role", "")).lower())
    except ValueError:
        role = None
    if role not in PORTAL_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Portal role required",
        )

    partner_id: UUID | None = None
    if role is ActorRole.PARTNER:
        try:
            partner_id = UUID(str(user.get("partner_id")))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Partner token without partner_id",
            )

    return Actor(role=role, email=user.get("email"), partner_id=partner_id)


async def get_current_actor(
    user: dict[str, Any] = Depends(get_current_user),
) -> Actor:
    """Resolve the authenticated portal actor."""
    return actor_from_claims(user)


def require_role(*roles: ActorRole) -> Callable[..., Coroutine[Any, Any, Actor]]:
    """Build a dependency that only admits the given roles."""

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role",
            )
        return actor

    return dependency


# Type aliases for dependency injection
CurrentUser = Annotated[dict[str, Any], Depends(get_current_user)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_role(ActorRole.ADMIN))]
