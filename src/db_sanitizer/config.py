"""Configuration module for the database sanitizer.

Config discovery and settings loading for the cleanup tool.

Rationale:
----------
- **Flexible config discovery with environment fallback:**
  The config file is discovered in the following order: (1) via the `DB_SANITIZER_CONFIG_PATH`
  environment variable, (2) `.env` in the project root, (3) fallback to environment variables only.
  This lets the tool run from a checkout with a local `.env`, or from CI with plain environment variables.

- **Pydantic Settings with extra env support:**
  The `Settings` class uses Pydantic's `BaseSettings` and allows extra environment variables without error.

- **Compiled-in targets:**
  The collections the engine touches, their scannable fields and the test-data patterns are NOT settings.
  They live in `db_sanitizer.registry` and `db_sanitizer.sweeps.pattern_sweep`.

How to extend/maintain:
-----------------------
- Add new config fields to the `Settings` class, and document them.
- If you change the config discovery logic, update this docstring.
"""

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "DB_SANITIZER_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent
DEFAULT_MONGODB_URL: str = "mongodb://localhost:27017/asm"
DEFAULT_DATABASE_NAME: str = "asm"


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """Determine the config file path to use, in order of precedence:
    1. Environment variable DB_SANITIZER_CONFIG_PATH
    2. .env in project root
    3. None (fallback to environment variables only)

    Returns:
        Optional[str]: Path to config file, or None if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=False)


class Settings(BaseSettings):
    """Sanitizer settings with environment variable support.
    All fields are loaded from the environment or the discovered .env file.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    ENV: str = "dev"

    # MongoDB configuration
    MONGODB_URL: str = DEFAULT_MONGODB_URL
    MONGODB_DATABASE: str = ""  # Empty means "use the database named in MONGODB_URL"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_CONNECT_RETRIES: int = 3

    # Cleanup behaviour
    CLEANUP_RECENT_HOURS: int = 48
    CLEANUP_SAMPLE_SIZE: int = 3

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v, info):
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set in .env or environment and not be empty.")
        if not str(v).startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(f"{info.field_name} must use the mongodb:// or mongodb+srv:// scheme.")
        return v

    @field_validator("CLEANUP_RECENT_HOURS", "MONGODB_CONNECT_RETRIES", mode="before")
    @classmethod
    def validate_positive_integers(cls, v, info):
        if int(v) <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer.")
        return v

    @field_validator("CLEANUP_SAMPLE_SIZE", mode="before")
    @classmethod
    def validate_sample_size(cls, v):
        if int(v) < 0:
            raise ValueError("CLEANUP_SAMPLE_SIZE cannot be negative.")
        return v

    @property
    def database_name(self) -> str:
        """Database to clean: explicit setting first, then the URL path, then the default."""
        if self.MONGODB_DATABASE:
            return self.MONGODB_DATABASE
        path = urlsplit(self.MONGODB_URL).path.lstrip("/")
        return path or DEFAULT_DATABASE_NAME

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in ("prod", "production")


settings = Settings()
