"""Fixtures for sync client tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fakes import PASSWORD, FakePasswords, FakeStore

from keysync.client.sync import LocalLayout, SyncEngine
from keysync.core.config import SyncConfig


@pytest.fixture
def password() -> str:
    """The sync password used by the fixtures."""
    return PASSWORD


@pytest.fixture
def store() -> FakeStore:
    """Create an empty in-memory remote store."""
    return FakeStore()


@pytest.fixture
def passwords() -> FakePasswords:
    """Create a password cache holding the test password."""
    return FakePasswords()


@pytest.fixture
def layout(tmp_path: Path) -> LocalLayout:
    """Create a local layout in a temporary directory."""
    return LocalLayout(tmp_path / "data")


@pytest.fixture
def config(tmp_path: Path) -> SyncConfig:
    """Create an engine config with short timings."""
    return SyncConfig(data_dir=tmp_path / "data", debounce_seconds=0.05, poll_interval=0.05)


@pytest.fixture
def make_engine(
    store: FakeStore, tmp_path: Path
) -> Iterator[Callable[..., SyncEngine]]:
    """Factory for engines (replicas) sharing the fake store."""
    engines: list[SyncEngine] = []

    def _make(
        name: str = "replica",
        passwords: FakePasswords | None = None,
        **config_overrides: Any,
    ) -> SyncEngine:
        data_dir = tmp_path / name
        options: dict[str, Any] = {"debounce_seconds": 0.05, "poll_interval": 0.05}
        options.update(config_overrides)
        engine = SyncEngine(
            store,  # type: ignore[arg-type]
            LocalLayout(data_dir),
            passwords or FakePasswords(),  # type: ignore[arg-type]
            SyncConfig(data_dir=data_dir, **options),
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.reset()


@pytest.fixture
def engine(
    store: FakeStore,
    layout: LocalLayout,
    passwords: FakePasswords,
    config: SyncConfig,
) -> Iterator[SyncEngine]:
    """Create a SyncEngine over the fake store."""
    engine = SyncEngine(store, layout, passwords, config)  # type: ignore[arg-type]
    yield engine
    engine.reset()
