"""Tests for access token verification."""

from __future__ import annotations

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from encore.config import settings
from encore.core.errors import AuthenticationError
from encore.security.auth import CurrentUser, TokenVerifier, extract_token
from tests.doubles import make_token


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(settings.jwt_secret, settings.jwt_algorithm)


class TestTokenVerifier:
    """HS256 token verification."""

    def test_verify_returns_user_id(self, verifier: TokenVerifier) -> None:
        assert verifier.verify(make_token("u1")) == "u1"

    def test_decode_returns_claims(self, verifier: TokenVerifier) -> None:
        claims = verifier.decode(make_token("u1", role="performer"))
        assert claims["id"] == "u1"
        assert claims["role"] == "performer"

    def test_sub_claim_accepted(self, verifier: TokenVerifier) -> None:
        from jose import jwt

        token = jwt.encode({"sub": "u7"}, settings.jwt_secret, algorithm="HS256")
        assert verifier.verify(token) == "u7"

    def test_expired_token(self, verifier: TokenVerifier) -> None:
        with pytest.raises(AuthenticationError, match="expired"):
            verifier.verify(make_token("u1", expires_in=-60))

    def test_wrong_secret(self, verifier: TokenVerifier) -> None:
        with pytest.raises(AuthenticationError, match="Invalid token"):
            verifier.verify(make_token("u1", secret="not-the-secret"))

    def test_garbage_token(self, verifier: TokenVerifier) -> None:
        with pytest.raises(AuthenticationError):
            verifier.verify("not.a.token")

    def test_missing_user_id(self, verifier: TokenVerifier) -> None:
        with pytest.raises(AuthenticationError, match="no user id"):
            verifier.verify(make_token(None, role="customer"))


class TestExtractToken:
    """Bearer header first, query token second."""

    def test_bearer_wins(self) -> None:
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="header")
        assert extract_token(credentials, "query") == "header"

    def test_query_fallback(self) -> None:
        assert extract_token(None, "query") == "query"

    def test_nothing(self) -> None:
        assert extract_token(None, None) is None
        assert extract_token(None, "") is None


class TestCurrentUser:
    @pytest.mark.parametrize(
        ("role", "expected"),
        [("administrator", True), ("admin", True), ("performer", False), (None, False)],
    )
    def test_is_admin(self, role: str | None, expected: bool) -> None:
        assert CurrentUser(id="u1", role=role).is_admin is expected
