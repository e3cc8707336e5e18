"""Record store contract and its SQL implementation."""

from gamebridge.store.base import RecordStore
from gamebridge.store.sql import SqlRecordStore


def create_sql_store() -> SqlRecordStore:
    """Build a store on the session factory set up by ``init_db``."""
    from gamebridge.database import get_session_factory

    return SqlRecordStore(get_session_factory())


__all__ = ["RecordStore", "SqlRecordStore", "create_sql_store"]
