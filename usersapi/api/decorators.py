"""
Bearer token authentication for the users API.

Tokens are HS256 JWTs signed with the configured secret key. The ``sub``
claim carries the numeric user id of the caller; requests without an
Authorization header are treated as anonymous (user id 0).

Security:
- HMAC-SHA256 signature verification with the configured secret key
- Expiration and issuer validation (RFC 7519)
- Tokens are never logged; only a truncated SHA256 hash is
"""

import hashlib
import logging
import time
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    MissingRequiredClaimError,
)
from flask import current_app, g, request

from usersapi.core.errors import UnauthorizedError
from usersapi.core.validators import absint

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"


class TokenValidationError(Exception):
    """Exception raised when JWT token validation fails."""
    pass


def issue_token(user_id: int, secret_key: str, issuer: str, ttl_seconds: int = 3600, now: Optional[int] = None) -> str:
    """
    Sign a bearer token for ``user_id``.

    Args:
        user_id: Numeric id of the user the token authenticates
        secret_key: HMAC signing key
        issuer: Value of the ``iss`` claim
        ttl_seconds: Lifetime of the token
        now: Issue time (epoch seconds), defaults to the current time

    Returns:
        Encoded JWT string
    """
    issued_at = int(time.time()) if now is None else now
    payload = {
        "iss": issuer,
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
    }
    return jwt.encode(payload, secret_key, algorithm=TOKEN_ALGORITHM)


def validate_token(token: str, secret_key: str, issuer: str) -> Dict[str, Any]:
    """
    Validate a bearer token and return its claims.

    Validations performed:
    1. Signature verification (HS256)
    2. Expiration (exp claim, required)
    3. Issuer (iss claim)
    4. Subject is a positive user id

    Raises:
        TokenValidationError: If any validation fails
    """
    try:
        claims = jwt.decode(
            token,
            secret_key,
            algorithms=[TOKEN_ALGORITHM],
            issuer=issuer,
            options={"require": ["exp", "iat", "sub"]},
            leeway=5,
        )
    except ExpiredSignatureError:
        raise TokenValidationError("Token expired (exp claim)")
    except InvalidIssuerError as e:
        raise TokenValidationError(f"Invalid issuer: {e}")
    except InvalidSignatureError:
        raise TokenValidationError("Invalid signature (token tampered or wrong key)")
    except MissingRequiredClaimError as e:
        raise TokenValidationError(f"Missing claim: {e}")
    except DecodeError as e:
        raise TokenValidationError(f"Token decode error (malformed JWT): {e}")
    except InvalidTokenError as e:
        raise TokenValidationError(f"Token validation failed: {e}")

    if not absint(claims.get("sub")):
        raise TokenValidationError("Token subject is not a user id")

    return claims


def _log_auth_attempt(token: str, success: bool, reason: str = "") -> None:
    """Log authentication attempt with a token hash, never the token."""
    token_hash = hashlib.sha256(token.encode()).hexdigest()[:12]
    correlation_id = request.headers.get("X-Correlation-Id", "none")
    if success:
        logger.info("Bearer auth ok | token_hash=%s | path=%s | correlation_id=%s", token_hash, request.path, correlation_id)
    else:
        logger.warning(
            "Bearer auth failed | token_hash=%s | path=%s | correlation_id=%s | reason=%s",
            token_hash, request.path, correlation_id, reason,
        )


def authenticate_request() -> int:
    """
    Resolve the caller's user id from the Authorization header.

    Returns:
        User id from the token ``sub`` claim, or 0 when no header is sent

    Raises:
        UnauthorizedError: 401 for a malformed header or invalid token
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        return 0

    if not auth_header.startswith("Bearer "):
        raise UnauthorizedError("json_invalid_token", "Authorization header must use the Bearer scheme.")

    token = auth_header[7:].strip()
    if not token:
        raise UnauthorizedError("json_invalid_token", "Bearer token is empty.")

    cfg = current_app.config["APP_CONFIG"]
    try:
        claims = validate_token(token, cfg.secret_key, cfg.token_issuer)
    except TokenValidationError as e:
        _log_auth_attempt(token, success=False, reason=str(e))
        raise UnauthorizedError("json_invalid_token", str(e))

    _log_auth_attempt(token, success=True)
    g.token_claims = claims
    return absint(claims["sub"])


def current_user_id() -> int:
    """Authenticated user id for the current request (0 when anonymous)."""
    return g.get("current_user_id", 0)
