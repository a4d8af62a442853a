"""Tests for bearer token decoding."""

import time

import pytest
from authlib.jose import jwt

from crvs_workflow.exceptions import AuthenticationError
from crvs_workflow.utils.auth import JwtClaimsExtractor

SECRET = "test-secret-key-with-enough-length"
ISSUER = "opencrvs:auth-service"
AUDIENCE = ["opencrvs:workflow-user"]


def make_token(key: str = SECRET, **overrides) -> str:
    payload = {
        "sub": "user-1",
        "scope": ["register", "performance"],
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": int(time.time()) + 600,
    }
    payload.update(overrides)
    return jwt.encode({"alg": "HS256"}, payload, key).decode()


@pytest.fixture
def extractor() -> JwtClaimsExtractor:
    return JwtClaimsExtractor(SECRET, issuer=ISSUER, audience=AUDIENCE)


class TestJwtClaimsExtractor:
    def test_valid_token(self, extractor):
        claims = extractor.extract(make_token())

        assert claims.sub == "user-1"
        assert claims.has_scope("register")
        assert claims.iss == ISSUER

    def test_space_separated_scope(self, extractor):
        claims = extractor.extract(make_token(scope="declare validate"))
        assert claims.scope == ["declare", "validate"]

    def test_bad_signature(self, extractor):
        with pytest.raises(AuthenticationError, match="Invalid token"):
            extractor.extract(make_token(key="another-secret-key-of-some-length"))

    def test_expired_token(self, extractor):
        with pytest.raises(AuthenticationError):
            extractor.extract(make_token(exp=int(time.time()) - 600))

    def test_wrong_issuer(self, extractor):
        with pytest.raises(AuthenticationError):
            extractor.extract(make_token(iss="someone-else"))

    def test_wrong_audience(self, extractor):
        with pytest.raises(AuthenticationError):
            extractor.extract(make_token(aud=["opencrvs:other"]))

    def test_garbage_token(self, extractor):
        with pytest.raises(AuthenticationError):
            extractor.extract("not-a-jwt")

    def test_missing_token(self, extractor):
        with pytest.raises(AuthenticationError, match="Missing bearer token"):
            extractor.extract("")

    def test_checks_are_optional(self):
        claims = JwtClaimsExtractor(SECRET).extract(make_token(iss="anyone", aud="anything"))
        assert claims.sub == "user-1"
