# chat_relay/db_store.py
import threading
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session as DBSession
from starlette.concurrency import run_in_threadpool

from chat_relay.kv_store import KeyValueStore
from chat_relay.models import KVEntry, get_engine, get_session_factory, init_db


class DatabaseKVStore(KeyValueStore):
    """SQLAlchemy-backed key-value store (SQLite, PostgreSQL, ...)

    The engine and tables are set up on first use, not at construction, so an
    unreachable database only surfaces as an error from put/get.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self._lock = threading.Lock()
        self.engine = None
        self.SessionFactory = None

    def _get_db(self) -> DBSession:
        """Get database session (context manager pattern)"""
        with self._lock:
            if self.SessionFactory is None:
                # a failed attempt leaves nothing cached; the next call retries
                engine = init_db(get_engine(self.database_url))
                self.engine = engine
                self.SessionFactory = get_session_factory(engine)
        return self.SessionFactory()

    # -------- sync operations, run off the event loop --------
    def put_sync(self, key: str, value: Dict[str, Any]) -> None:
        with self._get_db() as db:
            db.merge(KVEntry(key=key, value=value))
            db.commit()

    def get_sync(self, key: str) -> Optional[Dict[str, Any]]:
        with self._get_db() as db:
            entry = db.get(KVEntry, key)
            return dict(entry.value) if entry else None

    def keys(self, prefix: str = "") -> List[str]:
        with self._get_db() as db:
            rows = (
                db.query(KVEntry.key)
                .filter(KVEntry.key.startswith(prefix, autoescape=True))
                .order_by(KVEntry.key)
                .all()
            )
            return [row[0] for row in rows]

    # -------- KeyValueStore --------
    async def put(self, key: str, value: Dict[str, Any]) -> None:
        await run_in_threadpool(self.put_sync, key, value)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        return await run_in_threadpool(self.get_sync, key)
