"""JWT authentication configuration."""

from pydantic import BaseModel, SecretStr


class AuthConfig(BaseModel, frozen=True):
    """JWT verification settings."""

    secret_key: SecretStr
    algorithm: str
