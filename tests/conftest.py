"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from zkmix.config import MixerSettings  # noqa: E402
from zkmix.core.ledger import Ledger  # noqa: E402
from zkmix.core.mixer import Mixer  # noqa: E402
from zkmix.storage.database import DatabaseManager, MixerStore  # noqa: E402

MIXER_ADDRESS = "B62qmixer"
DENOMINATION = 1_000_000_000


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return MixerSettings(_env_file=None, deposit_tree_depth=8, denomination=DENOMINATION)


@pytest.fixture
def ledger():
    """Ledger with two funded depositors."""
    ledger = Ledger()
    ledger.mint("alice", 10 * DENOMINATION)
    ledger.mint("bob", 10 * DENOMINATION)
    return ledger


@pytest.fixture
def mixer(settings, ledger):
    """Initialized mixer with a small deposit tree."""
    mixer = Mixer(MIXER_ADDRESS, ledger=ledger, settings=settings)
    mixer.initialize()
    return mixer


@pytest.fixture
def temp_db(tmp_path):
    """Database manager on a temporary SQLite file."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'test.db'}")
    manager.create_tables()
    yield manager
    manager.engine.dispose()


@pytest.fixture
def store(temp_db):
    return MixerStore(temp_db)
