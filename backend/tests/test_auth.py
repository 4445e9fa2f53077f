"""
FloraLens Backend - Authentication Tests
=========================================

What:  Token decoding rules.
"""

from datetime import timedelta

import pytest
from jose import jwt

from app.auth import create_access_token, decode_access_token
from app.config import settings
from app.exceptions import UnauthorizedError


class TestAccessTokens:

    def test_round_trip_resolves_user(self):
        session = decode_access_token(create_access_token("user-42"))
        assert session.user_id == "user-42"

    def test_expired_token_is_rejected(self):
        token = create_access_token("user-42", expires_in=timedelta(seconds=-30))
        with pytest.raises(UnauthorizedError):
            decode_access_token(token)

    def test_wrong_secret_is_rejected(self):
        token = jwt.encode({"sub": "user-42"}, "some-other-secret", algorithm="HS256")
        with pytest.raises(UnauthorizedError):
            decode_access_token(token)

    def test_token_without_subject_is_rejected(self):
        token = jwt.encode({"scope": "scans"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
        with pytest.raises(UnauthorizedError) as exc_info:
            decode_access_token(token)
        assert exc_info.value.message == "Invalid token payload"

    def test_audience_is_enforced_when_configured(self, monkeypatch):
        token = create_access_token("user-42", extra_claims={"aud": "other-app"})
        monkeypatch.setattr(settings, "jwt_audience", "floralens-app")
        with pytest.raises(UnauthorizedError):
            decode_access_token(token)

