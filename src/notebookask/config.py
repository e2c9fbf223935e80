"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (NOTEBOOKASK__CACHE__MAX_SIZE=200)
  2. notebookask.yaml       (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The YAML file is optional; every field has a default. Setting
``data_dir`` re-roots every on-disk path that was not given explicitly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("notebookask")
_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("notebookask")

_DEFAULT_BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--no-first-run",
    "--no-default-browser-check",
]

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _find_config_file() -> str | None:
    """Return the path of the first notebookask.yaml found, or None."""
    candidates = [
        Path("notebookask.yaml"),
        Path(platformdirs.user_config_dir("notebookask")) / "notebookask.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class BrowserSettings(BaseModel):
    app_url: str = "https://notebooklm.google.com"
    auth_redirect_host: str = "accounts.google.com"
    user_agent: str = _DEFAULT_USER_AGENT
    browser_args: list[str] = _DEFAULT_BROWSER_ARGS
    locale: str = "en-US"
    viewport_width: int = 1280
    viewport_height: int = 720
    block_resources: bool = True
    fast_typing: bool = True
    navigation_timeout_seconds: float = 30.0
    page_timeout_seconds: float = 10.0
    auth_check_timeout_seconds: float = 5.0


class SessionSettings(BaseModel):
    idle_timeout_minutes: float = 15.0
    ready_timeout_seconds: float = 10.0  # per selector candidate
    cleanup_interval_minutes: float = 5.0
    use_pool: bool = True
    headless: bool = True


class QuerySettings(BaseModel):
    response_timeout_seconds: float = 120.0
    input_timeout_seconds: float = 5.0  # per selector candidate
    max_parallel: int = 3

    @field_validator("max_parallel")
    @classmethod
    def validate_max_parallel(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_parallel must be at least 1")
        return v


class CacheSettings(BaseModel):
    enabled: bool = True
    max_size: int = 100
    ttl_seconds: int = 86400
    path: str = ""
    auto_save_every: int = 5


class AuthSettings(BaseModel):
    state_path: str = ""
    encryption_key: SecretStr | None = None
    stale_after_days: float = 7.0

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: SecretStr | None) -> SecretStr | None:
        if v is not None and len(v.get_secret_value()) < 8:
            raise ValueError("encryption_key must be at least 8 characters long")
        return v


class HistorySettings(BaseModel):
    enabled: bool = True
    db_path: str = ""


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: NOTEBOOKASK__QUERY__MAX_PARALLEL=5
        env_prefix="NOTEBOOKASK__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    data_dir: str = _DEFAULT_DATA_DIR
    cache_dir: str = ""

    browser: BrowserSettings = BrowserSettings()
    session: SessionSettings = SessionSettings()
    query: QuerySettings = QuerySettings()
    cache: CacheSettings = CacheSettings()
    auth: AuthSettings = AuthSettings()
    history: HistorySettings = HistorySettings()
    logging: LoggingSettings = LoggingSettings()

    @model_validator(mode="after")
    def _fill_default_paths(self) -> Settings:
        data_dir = Path(self.data_dir).expanduser()
        if not self.cache_dir:
            # A custom data_dir keeps the cache alongside it.
            if self.data_dir == _DEFAULT_DATA_DIR:
                self.cache_dir = _DEFAULT_CACHE_DIR
            else:
                self.cache_dir = str(data_dir / "cache")
        if not self.cache.path:
            self.cache.path = str(Path(self.cache_dir).expanduser() / "response_cache.json")
        if not self.auth.state_path:
            self.auth.state_path = str(data_dir / "browser_state" / "state.json")
        if not self.history.db_path:
            self.history.db_path = str(data_dir / "history.db")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
