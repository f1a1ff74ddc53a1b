"""Access token verification.

Tokens are issued by the authentication service; this module only verifies
them and resolves the user id they carry. HTTP requests pass the token as
"Authorization: Bearer <token>" or "?token=<token>"; WebSocket handshakes
use the same two places.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from encore.api.errors import ForbiddenError, UnauthorizedError
from encore.config import settings
from encore.core.errors import AuthenticationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLES = frozenset({"administrator", "admin"})


class TokenVerifier:
    """Verifies HMAC-signed access tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def decode(self, token: str) -> dict[str, Any]:
        """Verify a token and return its claims.

        Raises:
            AuthenticationError: If the token is invalid, expired or has no id
        """
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except JWTError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e

        if not (claims.get("id") or claims.get("sub")):
            raise AuthenticationError("Token carries no user id")
        return claims

    def verify(self, token: str) -> str:
        """Return the user id carried by a token."""
        claims = self.decode(token)
        return str(claims.get("id") or claims.get("sub"))


def get_token_verifier() -> TokenVerifier:
    return TokenVerifier(settings.jwt_secret, settings.jwt_algorithm)


def extract_token(
    credentials: HTTPAuthorizationCredentials | None, query_token: str | None
) -> str | None:
    """Pick the Bearer credential, falling back to the query token."""
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return query_token or None


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller of an HTTP request."""

    id: str
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
    token: Annotated[str | None, Query(include_in_schema=False)] = None,
) -> CurrentUser:
    """FastAPI dependency resolving the caller from a Bearer or query token."""
    raw = extract_token(credentials, token)
    if raw is None:
        raise UnauthorizedError()
    try:
        claims = verifier.decode(raw)
    except AuthenticationError as e:
        logger.info(f"Rejected request to {request.url.path}: {e}")
        raise ForbiddenError("Forbidden") from e

    role = claims.get("role")
    return CurrentUser(
        id=str(claims.get("id") or claims.get("sub")),
        role=str(role) if role else None,
    )


async def require_admin(user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
    if not user.is_admin:
        raise ForbiddenError("Admin role required")
    return user
