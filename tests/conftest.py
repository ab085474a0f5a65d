import mongomock
import pytest
from fastapi.testclient import TestClient

from content import CommentStore, PostStore
from credentials import CredentialStore
from database import ensure_indexes
from guard import AuthorizationGuard, Principal
from settings import Settings
from tokens import TokenService

LONG_CONTENT = (
    "Python makes it pleasant to build small web services that grow up nicely over time."
)


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", jwt_expire_min=60, bcrypt_rounds=4)


@pytest.fixture
def db():
    database = mongomock.MongoClient().blog_test
    ensure_indexes(database)
    return database


@pytest.fixture
def credentials(db, settings):
    return CredentialStore(db, settings.password_scheme, settings.bcrypt_rounds)


@pytest.fixture
def tokens(settings):
    return TokenService(settings.jwt_secret, settings.jwt_expire_min)


@pytest.fixture
def guard(tokens, credentials):
    return AuthorizationGuard(tokens, credentials)


@pytest.fixture
def posts(db, credentials):
    return PostStore(db, credentials)


@pytest.fixture
def comments(db, posts, credentials):
    return CommentStore(db, posts, credentials)


def as_principal(user):
    return Principal(id=str(user["_id"]), role=user.get("role", "user"), user=user)


@pytest.fixture
def alice(credentials):
    return credentials.register("Alice", "alice@example.com", "secret123")


@pytest.fixture
def bob(credentials):
    return credentials.register("Bob", "bob@example.com", "secret123")


@pytest.fixture
def admin(credentials):
    return credentials.register("Admin", "admin@example.com", "secret123", role="admin")


@pytest.fixture
def app(db, settings):
    from main import create_app
    return create_app(db, settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def signup(client):
    """Register through the API and return (user, auth headers)."""
    def _signup(name, email, password="secret123"):
        r = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert r.status_code == 201, r.text
        body = r.json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}

    return _signup
