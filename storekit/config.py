"""Settings layer.

Values resolve in this order: keyword arguments, ``STOREKIT_*`` environment
variables, an optional YAML file under the settings directory, then secret
files. Each settings class names its YAML file through ``config_name``.
"""

import os
import threading
from pathlib import Path

import typing as t
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

settings_path = Path(os.getenv("STOREKIT_SETTINGS_PATH", "settings"))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STOREKIT_",
        extra="ignore",
        validate_default=True,
        protected_namespaces=("model_", "settings_"),
    )

    config_name: t.ClassVar[str | None] = None

    @classmethod
    def yaml_path(cls) -> Path | None:
        if cls.config_name is None:
            return None
        return settings_path / f"{cls.config_name}.yaml"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]
        yaml_file = cls.yaml_path()
        if yaml_file is not None and yaml_file.is_file():
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file))
        sources.append(file_secret_settings)
        return tuple(sources)


_instances: dict[type[Settings], Settings] = {}
_instances_lock = threading.Lock()


def get_settings[S: Settings](cls: type[S]) -> S:
    """Return the shared instance of a settings class, creating it once."""
    instance = _instances.get(cls)
    if instance is None:
        with _instances_lock:
            instance = _instances.get(cls)
            if instance is None:
                instance = cls()
                _instances[cls] = instance
    return t.cast("S", instance)


def reset_settings() -> None:
    with _instances_lock:
        _instances.clear()
