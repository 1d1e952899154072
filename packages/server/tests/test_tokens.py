"""
Tests for session tokens.

Covers:
- Expiry string parsing
- Issue / verify of HS256 session tokens
- Rejection of tampered, expired, foreign and provider tokens
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.core.errors import InvalidToken, TokenExpired
from app.core.tokens import SessionClaims, SessionTokenIssuer, parse_expires_in


class TestParseExpiresIn:
    def test_hours(self):
        assert parse_expires_in("24h") == 86400

    def test_minutes(self):
        assert parse_expires_in("30m") == 1800

    def test_surrounding_whitespace_is_ignored(self):
        assert parse_expires_in(" 2h ") == 7200

    @pytest.mark.parametrize("value", ["", None, "3600", "1d", "abc", "h", "-5m", "1.5h"])
    def test_anything_else_is_one_hour(self, value):
        assert parse_expires_in(value) == 3600


class TestSessionTokenIssuer:
    def test_expires_in_follows_settings(self, settings):
        issuer = SessionTokenIssuer(settings.model_copy(update={"jwt_expires_in": "30m"}))
        assert issuer.expires_in == 1800

    def test_issue_and_verify(self, session_tokens):
        claims = SessionClaims(
            subject="auth0|abc", email="ana@example.com", organization_id="org-1", role="admin"
        )
        token = session_tokens.issue(claims)
        assert session_tokens.verify(token) == claims

    def test_payload_uses_camel_case_claims(self, session_tokens, settings):
        token = session_tokens.issue(SessionClaims(subject="auth0|abc", organization_id="org-1"))
        payload = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"], issuer="reservaplus")
        assert payload["organizationId"] == "org-1"
        assert payload["iss"] == "reservaplus"
        assert payload["exp"] - payload["iat"] == 86400

    def test_header_is_hs256(self, session_tokens):
        token = session_tokens.issue(SessionClaims(subject="auth0|abc"))
        assert jwt.get_unverified_header(token)["alg"] == "HS256"

    def test_empty_subject_rejected(self, session_tokens):
        with pytest.raises(ValueError):
            session_tokens.issue(SessionClaims(subject=""))

    def test_expired_token(self, session_tokens):
        token = session_tokens.issue(
            SessionClaims(subject="auth0|abc"), expires_delta=timedelta(seconds=-10)
        )
        with pytest.raises(TokenExpired):
            session_tokens.verify(token)

    def test_tampered_signature(self, session_tokens):
        token = session_tokens.issue(SessionClaims(subject="auth0|abc"))
        head, payload, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        with pytest.raises(InvalidToken):
            session_tokens.verify(f"{head}.{payload}.{flipped}")

    def test_wrong_secret(self, session_tokens, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "auth0|abc", "iss": "reservaplus", "iat": now, "exp": now + timedelta(hours=1)},
            "some-other-secret-that-is-long-enough-000000",
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            session_tokens.verify(token)

    def test_foreign_issuer(self, session_tokens, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "auth0|abc", "iss": "elsewhere", "iat": now, "exp": now + timedelta(hours=1)},
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            session_tokens.verify(token)

    def test_missing_subject(self, session_tokens, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"iss": "reservaplus", "iat": now, "exp": now + timedelta(hours=1)},
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            session_tokens.verify(token)

    def test_provider_token_rejected(self, session_tokens, provider_token):
        with pytest.raises(InvalidToken):
            session_tokens.verify(provider_token())

    def test_garbage(self, session_tokens):
        with pytest.raises(InvalidToken):
            session_tokens.verify("not-a-token")
