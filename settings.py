"""
Runtime configuration, read from environment variables.
"""
import os

from pydantic import BaseModel, Field

DEFAULT_JWT_SECRET = "supersecret-blog-api"

# environment variable -> Settings field; unset variables keep the field default
ENV_VARS = {
    "DATABASE_URL": "database_url",
    "DATABASE_NAME": "database_name",
    "DATABASE_TIMEOUT_MS": "database_timeout_ms",
    "JWT_SECRET": "jwt_secret",
    "JWT_EXPIRE_MIN": "jwt_expire_min",
    "PASSWORD_SCHEME": "password_scheme",
    "BCRYPT_ROUNDS": "bcrypt_rounds",
    "LOG_LEVEL": "log_level",
    "PORT": "port",
}


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "blog"
    # upper bound for every round trip to MongoDB
    database_timeout_ms: int = 5000

    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expire_min: int = 60 * 24 * 7

    password_scheme: str = Field("bcrypt", pattern="^(bcrypt|argon2)$")
    bcrypt_rounds: int = Field(12, ge=4, le=31)

    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        values = {field: os.getenv(var) for var, field in ENV_VARS.items()}
        # pydantic coerces the numeric strings
        return cls(**{field: value for field, value in values.items() if value is not None})

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET
