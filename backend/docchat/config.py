"""DocChat application configuration.

Loads settings from two YAML files:
  * docchat.settings.yaml: non-secret configuration
  * docchat.secrets.yaml: API keys (never committed)

Relative filesystem paths (upload directory, database file) are resolved
against the directory holding the settings file so the service behaves the
same regardless of the working directory it is started from.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("docchat.settings.yaml")
SECRETS_FILE  = Path("docchat.secrets.yaml")

GOOGLE_KEY_ENV_VARS = ("GOOGLE_GENERATIVE_AI_API_KEY", "GOOGLE_API_KEY")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _resolve_path(value: str, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if path.is_absolute():
        return str(path)
    return str((base_dir / path).resolve())


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class GoogleSecrets(BaseModel):
    api_key: Optional[str] = None


class OpenAISecrets(BaseModel):
    api_key: Optional[str] = None


class AnthropicSecrets(BaseModel):
    api_key: Optional[str] = None


class Secrets(BaseModel):
    google:    GoogleSecrets    = Field(default_factory=GoogleSecrets)
    openai:    OpenAISecrets    = Field(default_factory=OpenAISecrets)
    anthropic: AnthropicSecrets = Field(default_factory=AnthropicSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000


class LoggingSettings(BaseModel):
    level: str = "info"


class UploadSettings(BaseModel):
    """Upload pipeline limits and storage location."""
    upload_dir:       str = "./uploads"
    max_file_size_mb: int = Field(50, gt=0)
    field_name:       str = "file"
    queue_size:       int = Field(8, gt=0)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class DatabaseSettings(BaseModel):
    path: str = "docchat.duckdb"


class ContentStoreSettings(BaseModel):
    provider: Literal["gemini", "none"] = "gemini"


class ChatSettings(BaseModel):
    """Model selection and chat-turn presentation."""
    provider:        Literal["gemini", "openai", "anthropic"] = "gemini"
    model:           str = "gemini-2.5-flash"
    max_tokens:      int = 4096
    title_max_chars: int = Field(50, gt=0)
    chat_id_header:  str = "X-Chat-Id"
    queue_size:      int = Field(8, gt=0)


class AuthSettings(BaseModel):
    user_header: str = "X-User-Id"


class AppConfig(BaseModel):
    server:        ServerSettings       = Field(default_factory=ServerSettings)
    logging:       LoggingSettings      = Field(default_factory=LoggingSettings)
    uploads:       UploadSettings       = Field(default_factory=UploadSettings)
    database:      DatabaseSettings     = Field(default_factory=DatabaseSettings)
    content_store: ContentStoreSettings = Field(default_factory=ContentStoreSettings)
    chat:          ChatSettings         = Field(default_factory=ChatSettings)
    auth:          AuthSettings         = Field(default_factory=AuthSettings)
    secrets:       Secrets              = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Environment fallbacks
# ---------------------------------------------------------------------------


def _apply_env_fallbacks(config: AppConfig) -> None:
    """Fill the Google API key from the environment when the secrets file has none."""
    if config.secrets.google.api_key:
        return
    for name in GOOGLE_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            config.secrets.google.api_key = value
            logger.info("Using Google API key from %s", name)
            return


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
    if secrets_path is None:
        secrets_path = settings_path.parent / SECRETS_FILE.name
    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(Path(secrets_path))

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)

    base_dir = settings_path.parent if settings_path.exists() else Path.cwd()
    config.uploads.upload_dir = _resolve_path(config.uploads.upload_dir, base_dir)
    if config.database.path != ":memory:":
        config.database.path = _resolve_path(config.database.path, base_dir)

    _apply_env_fallbacks(config)

    logger.info(
        "Settings loaded (upload_dir=%s, max_file_size_mb=%d, chat.provider=%s, chat.model=%s)",
        config.uploads.upload_dir,
        config.uploads.max_file_size_mb,
        config.chat.provider,
        config.chat.model,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace (or clear) the process-wide configuration."""
    global _config
    _config = config
