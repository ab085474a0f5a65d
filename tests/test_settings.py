from settings import ENV_VARS, Settings


def test_from_env_falls_back_to_field_defaults(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    assert Settings.from_env() == Settings()
    assert Settings().uses_default_secret


def test_from_env_reads_and_coerces(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DATABASE_NAME", "blog_prod")
    monkeypatch.setenv("JWT_EXPIRE_MIN", "30")
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    settings = Settings.from_env()
    assert settings.database_name == "blog_prod"
    assert settings.jwt_expire_min == 30
    assert not settings.uses_default_secret
    assert settings.database_url == Settings().database_url
