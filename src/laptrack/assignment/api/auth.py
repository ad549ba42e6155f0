"""
JWT Authentication for the laptop API.

Turns a verified bearer token into a CallerIdentity(user_id, role) and
enforces the role each endpoint needs. Tokens are issued elsewhere; this
module only verifies them.

Security Features:
- Signature, exp and nbf validation (iss/aud when configured)
- Explicit HMAC algorithm allowlist ('none' is rejected)
- Clock skew tolerance
- Dev mode toggle (REQUIRE_AUTH=false yields an admin identity)

Environment Variables:
- JWT_SECRET: Shared secret for HS* algorithms (required unless auth is disabled)
- JWT_ALGORITHM: Algorithm to use (default: HS256)
- JWT_ISSUER: Expected issuer claim (optional)
- JWT_AUDIENCE: Expected audience claim (optional)
- JWT_ROLE_CLAIM: Claim holding the caller's role (default: role)
- JWT_USER_ID_CLAIM: Claim holding the caller's id (default: sub)
- REQUIRE_AUTH: Enable/disable auth (default: true)
- JWT_CLOCK_SKEW_SECONDS: Clock skew tolerance (default: 30)
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Iterable, Optional

import jwt
from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError

from ..domain.entities import DELETE_ROLES, ELEVATED_ROLES, CallerIdentity, Role

logger = logging.getLogger(__name__)

# JWTConfig reads the environment at import time
load_dotenv()


class JWTConfig:
    """JWT configuration from environment variables."""

    SECRET: Optional[str] = os.getenv("JWT_SECRET")
    ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ISSUER: Optional[str] = os.getenv("JWT_ISSUER")
    AUDIENCE: Optional[str] = os.getenv("JWT_AUDIENCE")
    REQUIRE_AUTH: bool = os.getenv("REQUIRE_AUTH", "true").lower() == "true"
    CLOCK_SKEW_SECONDS: int = int(os.getenv("JWT_CLOCK_SKEW_SECONDS", "30"))

    ROLE_CLAIM: str = os.getenv("JWT_ROLE_CLAIM", "role")
    USER_ID_CLAIM: str = os.getenv("JWT_USER_ID_CLAIM", "sub")

    # Only shared-secret algorithms; there is no key distribution here
    ALLOWED_ALGORITHMS: frozenset[str] = frozenset({"HS256", "HS384", "HS512"})

    @classmethod
    def validate_algorithm(cls) -> str:
        """Validate that configured algorithm is in the allowlist.

        Raises:
            ValueError: If algorithm is not allowed
        """
        alg = cls.ALGORITHM.upper()

        if alg == "NONE":
            raise ValueError(
                "JWT algorithm 'none' is not allowed - this is a security vulnerability"
            )

        if alg not in cls.ALLOWED_ALGORITHMS:
            raise ValueError(
                f"JWT algorithm '{cls.ALGORITHM}' is not allowed. "
                f"Allowed algorithms: {sorted(cls.ALLOWED_ALGORITHMS)}"
            )

        return alg

    @classmethod
    def get_verification_key(cls) -> str:
        """Return the shared secret.

        Raises:
            ValueError: If JWT_SECRET is not configured
        """
        if not cls.SECRET:
            raise ValueError(f"JWT_SECRET required for algorithm {cls.ALGORITHM}")
        return cls.SECRET


class AuthenticationError(HTTPException):
    """Authentication failure exception."""

    def __init__(self, detail: str, headers: Optional[dict] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers=headers or {"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """Authorization failure exception."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


def _check_config() -> None:
    """Verify JWT configuration is valid.

    Raises:
        HTTPException: If configuration is invalid in production mode
    """
    if not JWTConfig.REQUIRE_AUTH:
        logger.warning(
            "REQUIRE_AUTH=false - authentication disabled. "
            "This should NEVER be used in production!"
        )
        return

    try:
        JWTConfig.validate_algorithm()
        JWTConfig.get_verification_key()
    except ValueError as e:
        logger.error(f"JWT configuration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server authentication not configured",
        )


def _extract_token(authorization: str) -> str:
    """Extract bearer token from Authorization header.

    Raises:
        AuthenticationError: If header format is invalid
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError(
            "Invalid authorization header format. Expected: Bearer <token>"
        )

    return parts[1]


def _validate_token(token: str) -> CallerIdentity:
    """Validate JWT and build the caller identity from its claims.

    Raises:
        AuthenticationError: If the token is invalid or lacks required claims
    """
    options = {
        "verify_signature": True,
        "verify_exp": True,
        "verify_nbf": True,
        "verify_iat": True,
        "require": ["exp"],
    }
    if JWTConfig.ISSUER:
        options["verify_iss"] = True
    if JWTConfig.AUDIENCE:
        options["verify_aud"] = True

    validated_alg = JWTConfig.validate_algorithm()

    try:
        payload = jwt.decode(
            token,
            JWTConfig.get_verification_key(),
            algorithms=[validated_alg],
            options=options,
            issuer=JWTConfig.ISSUER,
            audience=JWTConfig.AUDIENCE,
            leeway=JWTConfig.CLOCK_SKEW_SECONDS,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT expired")
        raise AuthenticationError("Token has expired")
    except jwt.ImmatureSignatureError as e:
        logger.warning(f"JWT not yet valid: {e}")
        raise AuthenticationError(f"Token not yet valid: {e}")
    except (jwt.InvalidAudienceError, jwt.InvalidIssuerError) as e:
        logger.warning(f"JWT claim error: {e}")
        raise AuthenticationError(f"Invalid token claims: {e}")
    except InvalidTokenError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise AuthenticationError("Invalid token")

    user_id = payload.get(JWTConfig.USER_ID_CLAIM)
    role = payload.get(JWTConfig.ROLE_CLAIM)

    if not user_id:
        logger.warning(f"Missing {JWTConfig.USER_ID_CLAIM} claim in token")
        raise AuthenticationError(f"Token missing required claim: {JWTConfig.USER_ID_CLAIM}")

    if not role:
        logger.warning(f"Missing {JWTConfig.ROLE_CLAIM} claim in token")
        raise AuthenticationError(f"Token missing required claim: {JWTConfig.ROLE_CLAIM}")

    return CallerIdentity(user_id=str(user_id), role=str(role))


async def get_caller(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CallerIdentity:
    """FastAPI dependency resolving the authenticated caller.

    Raises:
        AuthenticationError: If authentication fails
    """
    _check_config()

    if not JWTConfig.REQUIRE_AUTH:
        logger.debug("Auth disabled - returning dev identity")
        return CallerIdentity(user_id="dev-user", role=Role.ADMIN.value)

    if not authorization:
        raise AuthenticationError("Authorization header required")

    token = _extract_token(authorization)
    return _validate_token(token)


def require_roles(roles: Iterable[str]) -> Callable:
    """Build a dependency that admits only callers holding one of ``roles``."""
    allowed = frozenset(roles)

    async def dependency(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
        if caller.role not in allowed:
            logger.warning(
                f"Caller {caller.user_id} with role {caller.role} denied "
                f"(requires one of {sorted(allowed)})"
            )
            raise AuthorizationError("Not authorized for this operation")
        return caller

    return dependency


require_elevated = require_roles(ELEVATED_ROLES)
require_admin = require_roles(DELETE_ROLES)
