"""
# Configuration Management Module

This module provides the **configuration system** for the ClubSphere API.
Built on **Pydantic Settings**, it loads values from a configuration file or the
process environment, validates them at startup, and keeps secrets out of logs.

## Configuration Loading Hierarchy

Higher layers override lower layers:

1. **Environment variables** (highest priority)
2. **`CLUBSPHERE_CONFIG_PATH`**: custom config file path from an env var
3. **`.clubsphere` file** in the project root
4. **`.env` file** in the project root
5. **Default values** defined on `Settings` (lowest priority)

If no configuration file is found, the application runs in environment-only mode.

## Configuration Groups

- **Server**: `HOST`, `PORT`, `DEBUG`, `APP_NAME`, `LOG_LEVEL`
- **Database**: `MONGODB_*` connection and pool settings
- **Timeouts**: `STORAGE_OPERATION_TIMEOUT_SECONDS`, `IDENTITY_VERIFY_TIMEOUT_SECONDS`
- **Identity**: `IDENTITY_*` issuer, audience, JWKS location or shared secret
- **Membership policy**: `MEMBER_PERMISSIONS`, `RETRACT_ROLE_GRANT_ON_LEAVE`
- **Reconciliation**: `RECONCILIATION_ENABLED`, `RECONCILIATION_INTERVAL_MINUTES`

## Example `.clubsphere` File

```bash
MONGODB_URL=mongodb://localhost:27017
MONGODB_DATABASE=club_db
IDENTITY_JWKS_URL=https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com
IDENTITY_ISSUER=https://securetoken.google.com/clubsphere
IDENTITY_AUDIENCE=clubsphere
```

## Module Attributes

Attributes:
    CONFIG_PATH (Optional[str]): The configuration file that was loaded, if any.
    settings (Settings): Global settings singleton.
"""

import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
CLUBSPHERE_FILENAME: str = ".clubsphere"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "CLUBSPHERE_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determines the configuration file path based on a predefined precedence order.

    Checks, in order: the `CLUBSPHERE_CONFIG_PATH` environment variable (if set and the
    file exists), a `.clubsphere` file in the project root, then a `.env` file in the
    project root.

    Returns:
        Optional[str]: The path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    clubsphere_path: Path = PROJECT_ROOT / CLUBSPHERE_FILENAME
    if clubsphere_path.exists():
        return str(clubsphere_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    Values are read from environment variables or the discovered configuration file.
    Timeouts are validated at startup so a misconfigured deployment fails fast instead
    of serving requests with unbounded I/O.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    APP_NAME: str = "ClubSphere API"
    HOST: str = "127.0.0.1"
    PORT: int = 5000
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # MongoDB configuration
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "club_db"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_SOCKET_TIMEOUT: int = 10000
    MONGODB_MIN_POOL_SIZE: int = 5
    MONGODB_MAX_POOL_SIZE: int = 50

    # Authentication (optional)
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Per-operation bound applied on top of the driver timeouts (seconds)
    STORAGE_OPERATION_TIMEOUT_SECONDS: float = 5.0

    # Identity authority
    IDENTITY_JWKS_URL: Optional[str] = None
    IDENTITY_ISSUER: Optional[str] = None
    IDENTITY_AUDIENCE: Optional[str] = None
    IDENTITY_ALGORITHMS: List[str] = ["RS256"]
    IDENTITY_SHARED_SECRET: Optional[SecretStr] = None
    IDENTITY_VERIFY_TIMEOUT_SECONDS: float = 5.0
    IDENTITY_JWKS_CACHE_SECONDS: int = 3600

    # Membership policy
    MEMBER_PERMISSIONS: List[str] = ["view_events", "register_events", "view_members"]
    RETRACT_ROLE_GRANT_ON_LEAVE: bool = False

    # Reconciliation of derived collections
    RECONCILIATION_ENABLED: bool = False
    RECONCILIATION_INTERVAL_MINUTES: int = 15

    @field_validator("MONGODB_URL", "MONGODB_DATABASE", mode="before")
    @classmethod
    def no_empty_values(cls, v: Any, info: Any) -> Any:
        """
        Validates that required database settings are not empty.

        Raises:
            ValueError: If the value is empty or whitespace.
        """
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .clubsphere and not empty!")
        return v

    @field_validator("STORAGE_OPERATION_TIMEOUT_SECONDS", "IDENTITY_VERIFY_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def validate_timeout_values(cls, v: Any, info: Any) -> float:
        """
        Validates that timeout values are within a reasonable range (0-120 seconds, exclusive of 0).

        Raises:
            ValueError: If the timeout is out of range.
        """
        timeout = float(v)
        if timeout <= 0 or timeout > 120:
            raise ValueError(f"{info.field_name} must be greater than 0 and at most 120 seconds")
        return timeout

    @field_validator("MEMBER_PERMISSIONS")
    @classmethod
    def validate_member_permissions(cls, v: List[str]) -> List[str]:
        """A role grant must always carry at least one permission."""
        if not v:
            raise ValueError("MEMBER_PERMISSIONS must not be empty")
        return v

    @field_validator("RECONCILIATION_INTERVAL_MINUTES", mode="before")
    @classmethod
    def validate_positive_interval(cls, v: Any, info: Any) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @property
    def is_production(self) -> bool:
        """Production mode is defined as `DEBUG=False`."""
        return not self.DEBUG

    @property
    def identity_uses_shared_secret(self) -> bool:
        """True when tokens are verified with `IDENTITY_SHARED_SECRET` instead of a JWKS endpoint."""
        return self.IDENTITY_SHARED_SECRET is not None and not self.IDENTITY_JWKS_URL


settings = Settings()
