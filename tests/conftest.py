from __future__ import annotations

import sys
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = BASE_DIR / "src"
sys.path.insert(0, str(SRC_DIR))

from pos_registry_client import ClientConfig, PosTerminal  # noqa: E402
from pos_helpers import BASE_URL  # noqa: E402


@pytest.fixture
def config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(
        env_name="test",
        api_base_url=BASE_URL,
        retries=0,
        retry_backoff_seconds=0,
        probe_timeout_seconds=0.5,
        store_path=str(tmp_path / "pos.sqlite3"),
    )


@pytest.fixture
def terminal(config: ClientConfig) -> PosTerminal:
    return PosTerminal(config, background_sync=False)
