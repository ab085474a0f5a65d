import itertools

import pytest
from bson import ObjectId

from conftest import as_principal
from errors import Forbidden, Unauthenticated
from guard import Principal


def test_authenticate_resolves_live_user(guard, tokens, alice):
    principal = guard.authenticate(tokens.issue(alice))
    assert principal.id == str(alice["_id"])
    assert principal.role == "user"
    assert principal.user["email"] == "alice@example.com"


def test_deleted_user_with_valid_token_is_rejected(guard, tokens, credentials, alice):
    token = tokens.issue(alice)
    credentials.delete(alice)
    with pytest.raises(Unauthenticated):
        guard.authenticate(token)


def test_role_comes_from_the_stored_record(guard, tokens, credentials, alice):
    token = tokens.issue(alice)
    credentials.set_role(alice["_id"], "admin")
    assert guard.authenticate(token).is_admin


def test_authorize_role(guard, alice, admin):
    user, boss = as_principal(alice), as_principal(admin)
    assert guard.authorize_role(user, "user") is user
    assert guard.authorize_role(boss, "user") is boss
    assert guard.authorize_role(boss, "admin") is boss
    # admin satisfies roles the rank table does not know
    assert guard.authorize_role(boss, "editor") is boss
    with pytest.raises(Forbidden):
        guard.authorize_role(user, "admin")
    with pytest.raises(Forbidden):
        guard.authorize_role(user, "editor")


@pytest.mark.parametrize(
    "role,owns",
    list(itertools.product(["user", "admin"], [True, False])),
)
def test_authorize_ownership(guard, role, owns):
    me = str(ObjectId())
    resource = {"_id": ObjectId(), "author": me if owns else str(ObjectId())}
    principal = Principal(id=me, role=role, user={"_id": ObjectId(me), "role": role})
    if owns or role == "admin":
        assert guard.authorize_ownership(principal, resource) is principal
    else:
        with pytest.raises(Forbidden):
            guard.authorize_ownership(principal, resource)
