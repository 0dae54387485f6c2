from __future__ import annotations

import pytest

from socialstore.config import StoreConfig, StoreSection
from socialstore.durable import DurableStore
from socialstore.stores import Stores, open_stores


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.delenv("SOCIAL_AGENT_DATA_DIR", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def durable(data_dir) -> DurableStore:
    return DurableStore(data_dir, lock_timeout_ms=1000)


@pytest.fixture
def stores(tmp_path, data_dir) -> Stores:
    cfg = StoreConfig(root=tmp_path, store=StoreSection(data_dir=data_dir, lock_timeout_ms=1000))
    return open_stores(cfg)
