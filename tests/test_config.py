"""Tests for the layered settings sources."""

import typing as t

import pytest
from pydantic_settings import SettingsConfigDict

from storekit import config
from storekit.config import Settings, get_settings, reset_settings
from storekit.repository import RepositorySettings
from storekit.repository._base import Operation


class SampleSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="STOREKIT_SAMPLE_")

    config_name: t.ClassVar[str | None] = "sample"

    retries: int = 3
    label: str = "default"


@pytest.fixture
def yaml_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "settings_path", tmp_path)
    (tmp_path / "sample.yaml").write_text("retries: 5\nlabel: from-yaml\n")
    return tmp_path


class TestSources:
    def test_defaults(self) -> None:
        settings = SampleSettings()

        assert settings.retries == 3
        assert settings.label == "default"

    def test_environment_override(self, monkeypatch) -> None:
        monkeypatch.setenv("STOREKIT_SAMPLE_RETRIES", "7")

        assert SampleSettings().retries == 7

    def test_yaml_file(self, yaml_settings) -> None:
        settings = SampleSettings()

        assert settings.retries == 5
        assert settings.label == "from-yaml"

    def test_precedence(self, yaml_settings, monkeypatch) -> None:
        """Keyword arguments beat the environment, which beats YAML."""
        monkeypatch.setenv("STOREKIT_SAMPLE_RETRIES", "7")
        monkeypatch.setenv("STOREKIT_SAMPLE_LABEL", "from-env")

        settings = SampleSettings(label="explicit")

        assert settings.retries == 7
        assert settings.label == "explicit"

    def test_missing_yaml_is_ignored(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(config, "settings_path", tmp_path / "absent")

        assert SampleSettings().retries == 3


class TestSharedInstances:
    def test_get_settings_is_cached(self) -> None:
        assert get_settings(SampleSettings) is get_settings(SampleSettings)

    def test_reset_settings(self, monkeypatch) -> None:
        first = get_settings(SampleSettings)
        monkeypatch.setenv("STOREKIT_SAMPLE_RETRIES", "9")
        reset_settings()

        second = get_settings(SampleSettings)

        assert second is not first
        assert second.retries == 9


class TestRepositorySettings:
    def test_default_timeouts(self) -> None:
        settings = RepositorySettings()

        assert settings.timeout_for(Operation.EXISTS) == 10.0
        assert settings.timeout_for(Operation.GET_RANGE) == 20.0
        assert settings.timeout_for(Operation.UPDATE_RANGE) == 40.0
        assert settings.timeout_for(Operation.SAVE_CHANGES) == 30.0
        assert settings.timeout_for(Operation.COMMIT) == 60.0
        assert settings.isolation_level is None

    def test_timeout_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("STOREKIT_REPOSITORY_GET_RANGE_TIMEOUT", "3")

        assert RepositorySettings().timeout_for(Operation.GET_RANGE) == 3.0

    def test_timeouts_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            RepositorySettings(count_timeout=0)
