import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from assetport.lib.exceptions import ConfigurationError

# Load .env file early so env vars are available for YAML interpolation
load_dotenv(Path.cwd() / ".env")

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

CONFIG_ENV_VAR = "ASSETPORT_CONFIG"
DEFAULT_CONFIG_FILE = "assetport.yaml"
LATEST_API_VERSION = "latest"

M = TypeVar("M", bound=BaseModel)


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ConfigurationError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Return the YAML config path, honouring ``$ASSETPORT_CONFIG``."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_app_config(config_path: Path | None = None) -> dict:
    """Load and parse the YAML config with environment variable interpolation."""
    config_path = config_path or get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"{config_path.name} not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

    return interpolate_env_vars(config)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def load_options(model: type[M], data: Any) -> M:
    """Validate *data* against an options model, raising ConfigurationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid {model.__name__}: {_format_validation_error(exc)}"
        ) from exc


class _Options(BaseModel):
    """Immutable options record shared by every backend."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    folder: str = ""

    @model_validator(mode="before")
    @classmethod
    def _strip_folder(cls, data):
        if isinstance(data, dict) and isinstance(data.get("folder"), str):
            data = {**data, "folder": data["folder"].strip("/")}
        return data


class LocalOptions(_Options):
    """Local filesystem storage options."""

    path: str = Field(min_length=1)
    create: bool = False
    base_url: str | None = None


class S3Options(_Options):
    """AWS S3 (or S3-compatible) storage options.

    Credentials are required up front; the provider never falls back to the
    ambient AWS credential chain.
    """

    access_key_id: str = Field(min_length=1)
    secret_access_key: str = Field(min_length=1)
    bucket: str = Field(min_length=1)
    region: str = Field(min_length=1)
    api_version: str = LATEST_API_VERSION
    endpoint_url: str | None = None
    public_url: str | None = None
    acl: str | None = None
    presign_ttl: int = Field(default=3600, gt=0)
    page_size: int = Field(default=1000, gt=0, le=1000)

    @model_validator(mode="before")
    @classmethod
    def _default_api_version(cls, data):
        if isinstance(data, dict) and not data.get("api_version"):
            data = {**data, "api_version": LATEST_API_VERSION}
        return data


class AzureBlobOptions(_Options):
    """Azure Blob Storage options."""

    account_name: str = Field(min_length=1)
    container: str = Field(min_length=1)
    account_key: str | None = None
    sas_token: str | None = None
    connection_string: str | None = None
    api_version: str = LATEST_API_VERSION
    endpoint_url: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_api_version(cls, data):
        if isinstance(data, dict) and not data.get("api_version"):
            data = {**data, "api_version": LATEST_API_VERSION}
        return data

    @model_validator(mode="after")
    def _require_credential(self):
        if not (self.account_key or self.sas_token or self.connection_string):
            raise ValueError(
                "one of account_key, sas_token or connection_string is required"
            )
        return self

    @property
    def account_url(self) -> str:
        if self.endpoint_url:
            return self.endpoint_url.rstrip("/")
        return f"https://{self.account_name}.blob.core.windows.net"


class StoreConfig(BaseModel):
    """Configuration for a single named store."""

    model_config = ConfigDict(frozen=True)

    backend: str = "local"
    local: LocalOptions | None = None
    s3: S3Options | None = None
    azure: AzureBlobOptions | None = None
    # Free-form options handed to "module:ClassName" backends
    options: dict[str, Any] = {}

    @model_validator(mode="after")
    def _require_backend_section(self):
        if self.backend in ("local", "s3", "azure") and getattr(self, self.backend) is None:
            raise ValueError(f"backend '{self.backend}' requires a '{self.backend}' section")
        return self


class StorageConfig(BaseModel):
    """Named stores and the default store name."""

    model_config = ConfigDict(frozen=True)

    default: str = "default"
    stores: dict[str, StoreConfig] = {}

    @model_validator(mode="after")
    def _default_must_exist(self):
        if self.stores and self.default not in self.stores:
            raise ValueError(f"default store '{self.default}' is not defined in stores")
        return self


class LogfireConfig(BaseModel):
    """Pydantic Logfire observability configuration."""

    enabled: bool = False
    service_name: str = "assetport"
    environment: str | None = None
    console: bool = False
    sample_rate: float = 1.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ASSETPORT_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    log_level: str = "warning"

    # Storage config (loaded from the YAML file)
    storage: StorageConfig = StorageConfig()

    # Observability config (loaded from the YAML file)
    logfire: LogfireConfig = LogfireConfig()


def load_storage_config(data: Any) -> StorageConfig:
    """Validate a raw ``storage`` mapping."""
    return load_options(StorageConfig, data)


def build_settings(app_config: dict) -> Settings:
    """Merge a parsed YAML mapping into the env-derived settings."""
    base_settings = Settings()

    updates = {}

    if "storage" in app_config:
        updates["storage"] = load_storage_config(app_config["storage"])

    if "logfire" in app_config:
        updates["logfire"] = load_options(LogfireConfig, app_config["logfire"])

    if "log_level" in app_config:
        updates["log_level"] = str(app_config["log_level"])

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and the YAML config file."""
    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return Settings()

    return build_settings(app_config)
