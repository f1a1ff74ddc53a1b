"""Authentication for HTTP requests and real-time handshakes."""

from encore.security.auth import (
    CurrentUser,
    TokenVerifier,
    extract_token,
    get_current_user,
    get_token_verifier,
    require_admin,
)

__all__ = [
    "TokenVerifier",
    "CurrentUser",
    "extract_token",
    "get_current_user",
    "get_token_verifier",
    "require_admin",
]
