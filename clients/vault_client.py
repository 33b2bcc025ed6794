"""
Billing database settings from HashiCorp Vault.

The API reads one KV v2 secret, ``vetclinic/database``, holding the
connection URL and optionally the pool bounds. Vault is reached with AppRole
credentials from the environment; any missing piece stops startup.
"""

import logging
import os
from functools import lru_cache

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized
from pydantic import BaseModel, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

DATABASE_SECRET_PATH = "vetclinic/database"


class VaultError(Exception):
    """Database settings could not be loaded. The billing API cannot start."""


class DatabaseSettings(BaseModel):
    """Connection settings for the billing database."""

    url: str = Field(..., min_length=1)
    pool_min: int = Field(2, ge=1)
    pool_max: int = Field(20, ge=1)

    @model_validator(mode="after")
    def pool_bounds_ordered(self) -> "DatabaseSettings":
        if self.pool_min > self.pool_max:
            raise ValueError("pool_min must not exceed pool_max")
        return self


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise VaultError(f"{name} environment variable is required")
    return value


def _login() -> hvac.Client:
    """Client authenticated with the AppRole from VAULT_ROLE_ID/VAULT_SECRET_ID."""
    addr = _required_env("VAULT_ADDR")
    role_id = _required_env("VAULT_ROLE_ID")
    secret_id = _required_env("VAULT_SECRET_ID")

    client = hvac.Client(url=addr, namespace=os.getenv("VAULT_NAMESPACE") or None)
    try:
        auth = client.auth.approle.login(role_id=role_id, secret_id=secret_id)
    except (Unauthorized, Forbidden, InvalidPath) as e:
        logger.error("AppRole login to %s failed: %s", addr, e)
        raise VaultError(f"AppRole authentication failed: {e}") from e

    client.token = auth["auth"]["client_token"]
    if not client.is_authenticated():
        raise VaultError("AppRole authentication failed: token rejected")
    return client


@lru_cache(maxsize=1)
def load_database_settings() -> DatabaseSettings:
    """
    Read the database settings secret (once per process).

    Raises:
        VaultError: Missing environment, failed login, unreadable secret
            or invalid settings
    """
    client = _login()
    try:
        response = client.secrets.kv.v2.read_secret_version(
            path=DATABASE_SECRET_PATH, raise_on_deleted_version=True
        )
    except InvalidPath as e:
        raise VaultError(f"Secret '{DATABASE_SECRET_PATH}' not found in Vault") from e
    except (Unauthorized, Forbidden) as e:
        logger.error("Access denied to secret %s: %s", DATABASE_SECRET_PATH, e)
        raise VaultError(f"Access denied to secret '{DATABASE_SECRET_PATH}'") from e

    try:
        settings = DatabaseSettings.model_validate(response["data"]["data"])
    except ValidationError as e:
        raise VaultError(f"Invalid database settings in '{DATABASE_SECRET_PATH}': {e}") from e

    logger.info("Database settings loaded from Vault (pool %d-%d)", settings.pool_min, settings.pool_max)
    return settings
