from datetime import datetime, timedelta, timezone

import jwt
import pytest

from security.tokens import DEFAULT_DISPLAY_NAME, TokenError, bearer_token, decode_identity

SECRET = "unit-test-secret-0123456789abcdef"


def _token(**claims):
    return jwt.encode(claims, SECRET, algorithm="HS256")


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


def test_decode_identity_claims():
    identity = decode_identity(_token(userId="U1", email="a@b.c", nombre="Ana"), SECRET)
    assert (identity.user_id, identity.email, identity.display_name) == ("U1", "a@b.c", "Ana")


def test_decode_identity_fallbacks():
    identity = decode_identity(_token(sub="42"), SECRET)
    assert identity.user_id == "42"
    assert identity.email is None
    assert identity.display_name == DEFAULT_DISPLAY_NAME

    assert decode_identity(_token(sub="7", name="Bo"), SECRET).display_name == "Bo"


@pytest.mark.parametrize("token", [
    "garbage",
    jwt.encode({"userId": "U1"}, "another-secret-0123456789abcdef", algorithm="HS256"),
    jwt.encode({"email": "a@b.c"}, SECRET, algorithm="HS256"),
    jwt.encode({"userId": "U1", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)}, SECRET, algorithm="HS256"),
])
def test_decode_identity_rejects(token):
    with pytest.raises(TokenError):
        decode_identity(token, SECRET)
