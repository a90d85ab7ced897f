"""Shared fixtures for storekit tests."""

import pytest
from sample_records import Hero

from storekit.adapters import MemoryStoreAdapter
from storekit.config import reset_settings
from storekit.repository import Repository, RepositorySettings


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def heroes() -> list[Hero]:
    return [
        Hero(name="Ada", power=90, team="red"),
        Hero(name="Bo", power=40, team="blue"),
        Hero(name="Cy", power=90, team="blue"),
        Hero(name="Di", power=10, team="red"),
        Hero(name="Ed", power=40, team="red"),
    ]


@pytest.fixture
def settings() -> RepositorySettings:
    return RepositorySettings()


@pytest.fixture
def adapter(heroes: list[Hero]) -> MemoryStoreAdapter[Hero]:
    return MemoryStoreAdapter(Hero, records=heroes)


@pytest.fixture
def repository(
    adapter: MemoryStoreAdapter[Hero],
    settings: RepositorySettings,
) -> Repository[Hero]:
    return Repository(adapter, settings)
