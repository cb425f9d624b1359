"""Settings for the item store, its backend and logging.

Sources, highest priority first: keyword arguments to ``Settings``, then
``READLATER__``-prefixed environment variables (``READLATER__STORE__MAX_ITEMS=100``),
then ``readlater.yaml`` from the working directory or the platform config
directory. Anything left unset keeps the default declared below, so running
without a config file is normal.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from readlater.store import MAX_ITEMS, STORAGE_KEY

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("readlater")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "readlater.db")


def _find_config_file() -> str | None:
    """Return the path of the first readlater.yaml found, or None."""
    candidates = [
        Path("readlater.yaml"),
        Path(platformdirs.user_config_dir("readlater")) / "readlater.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class StoreSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str = STORAGE_KEY
    max_items: int = Field(default=MAX_ITEMS, ge=1)
    # False selects last-writer-wins between store instances
    compare_and_swap: bool = True


class BackendSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["sqlite", "memory"] = "sqlite"
    db_path: str = _DEFAULT_DB_PATH
    poll_interval_seconds: float = Field(default=1.0, gt=0)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: READLATER__BACKEND__KIND=memory
        env_prefix="READLATER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    data_dir: str = _DEFAULT_DATA_DIR
    store: StoreSettings = StoreSettings()
    backend: BackendSettings = BackendSettings()
    logging: LoggingSettings = LoggingSettings()

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
        # No .env or secrets-dir support.
        return (init_settings, env_settings, YamlConfigSettingsSource(settings_cls))
