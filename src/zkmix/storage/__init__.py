"""Storage layer for persistent data."""

from zkmix.storage.database import (
    DatabaseManager,
    MixerStore,
    MixerAccountRecord,
    MixerEventRecord,
    LedgerBalance,
    Base,
    get_db_manager,
    reset_db_manager,
)

__all__ = [
    "DatabaseManager",
    "MixerStore",
    "MixerAccountRecord",
    "MixerEventRecord",
    "LedgerBalance",
    "Base",
    "get_db_manager",
    "reset_db_manager",
]
