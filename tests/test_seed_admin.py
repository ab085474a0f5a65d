from seed_admin import main, seed_admin


def test_creates_admin(credentials):
    assert seed_admin(credentials, "Admin", "admin@example.com", "secret123") == "created"
    user = credentials.verify("admin@example.com", "secret123")
    assert user["role"] == "admin"


def test_promotes_existing_user(credentials, alice):
    assert seed_admin(credentials, "Admin", "alice@example.com", "other-secret") == "promoted"
    user = credentials.verify("alice@example.com", "secret123")
    assert user["role"] == "admin"


def test_promote_with_password_reset(credentials, alice):
    seed_admin(credentials, "Admin", "alice@example.com", "other-secret", reset_password=True)
    assert credentials.verify("alice@example.com", "other-secret")["role"] == "admin"


def test_existing_admin_is_left_alone(credentials, admin):
    assert seed_admin(credentials, "Admin", "admin@example.com", "whatever") == "exists"


def test_cli_uses_environment(db, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "root@example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "rootsecret")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    assert main([], db=db) == 0
    assert db.user.find_one({"email": "root@example.com"})["role"] == "admin"
