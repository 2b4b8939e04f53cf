"""Shared pytest fixtures."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use cheap Argon2id parameters so encryption-heavy tests stay fast."""
    monkeypatch.setattr("keysync.core.crypto.ARGON2_TIME_COST", 1)
    monkeypatch.setattr("keysync.core.crypto.ARGON2_MEMORY_COST", 1024)
    monkeypatch.setattr("keysync.core.crypto.ARGON2_PARALLELISM", 1)
