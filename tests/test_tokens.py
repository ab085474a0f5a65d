from datetime import datetime, timedelta, timezone

import jwt
import pytest
from bson import ObjectId

from errors import TokenExpired, TokenInvalid, Unauthenticated
from tokens import TokenService


@pytest.fixture
def user():
    return {"_id": ObjectId(), "role": "admin"}


def test_issue_and_verify(tokens, user):
    claims = tokens.verify(tokens.issue(user))
    assert claims == {"user_id": str(user["_id"]), "role": "admin"}


def test_expired_token(tokens, user):
    old = datetime.now(timezone.utc) - timedelta(minutes=tokens.expire_minutes + 1)
    with pytest.raises(TokenExpired):
        tokens.verify(tokens.issue(user, now=old))


def test_token_from_other_secret_is_rejected(tokens, user):
    other = TokenService("another-secret")
    with pytest.raises(TokenInvalid):
        tokens.verify(other.issue(user))


def test_tampered_payload_is_rejected(tokens, user):
    header, payload, signature = tokens.issue(user).split(".")
    forged = jwt.encode({"sub": str(user["_id"]), "role": "admin", "iat": 0, "exp": 9999999999}, "x")
    _, forged_payload, _ = forged.split(".")
    with pytest.raises(TokenInvalid):
        tokens.verify(".".join([header, forged_payload, signature]))


def test_missing_expiry_is_rejected(tokens, settings, user):
    token = jwt.encode({"sub": str(user["_id"]), "iat": 0}, settings.jwt_secret, algorithm="HS256")
    with pytest.raises(TokenInvalid):
        tokens.verify(token)


def test_garbage_is_unauthenticated(tokens):
    with pytest.raises(Unauthenticated):
        tokens.verify("not.a.token")


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        TokenService("")
