"""
Session storage keyed by opaque session id.

SessionStore is the only place a Session is constructed or destroyed.
Writes for one session id are serialized by a per-key asyncio.Lock, so
unrelated sessions never wait on each other.

Two backends:
- InMemorySessionStore: lives as long as the process.
- SqlSessionStore: SQLModel table; blocking DB calls run in a thread
  pool so they don't stall the event loop.
"""
import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session as DbSession

from whoopdash.models.session import Session, SessionRecord, TokenBundle, utcnow

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore(ABC):
    """Async keyed map of session id -> Session."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key; the lock is dropped when this hits zero.
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _locked(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    # ── Backend primitives ────────────────────────────────────────────────────

    @abstractmethod
    async def _load(self, session_id: str) -> Optional[Session]:
        """Return the stored session, or None."""

    @abstractmethod
    async def _save(self, session: Session) -> None:
        """Insert or overwrite one session."""

    @abstractmethod
    async def _delete(self, session_id: str) -> bool:
        """Delete one session; return True if it existed."""

    async def close(self) -> None:
        """Release backend resources at shutdown."""

    # ── Public API ────────────────────────────────────────────────────────────

    async def get(self, session_id: str) -> Optional[Session]:
        return await self._load(session_id)

    async def put(self, session: Session) -> None:
        async with self._locked(session.session_id):
            await self._save(session)

    async def remove(self, session_id: str) -> None:
        async with self._locked(session_id):
            existed = await self._delete(session_id)
        if existed:
            logger.info("Session removed")

    async def create(
        self, token_bundle: TokenBundle, session_id: Optional[str] = None
    ) -> Session:
        """Create a session (or overwrite the bundle of an existing one)."""
        session = Session(session_id=session_id or new_session_id(), token_bundle=token_bundle)
        await self.put(session)
        return session

    async def replace_tokens(
        self, session_id: str, token_bundle: TokenBundle
    ) -> Optional[Session]:
        """
        Swap the bundle of an existing session.

        Returns None without writing if the session is gone (e.g. the user
        logged out while a refresh was in flight).
        """
        async with self._locked(session_id):
            current = await self._load(session_id)
            if current is None:
                return None
            updated = Session(session_id=session_id, token_bundle=token_bundle)
            await self._save(updated)
            return updated


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        super().__init__()
        self._sessions: Dict[str, Session] = {}

    async def _load(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def _save(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    async def _delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


class SqlSessionStore(SessionStore):
    """
    Session store backed by the `sessions` table.

    DB calls run on a dedicated thread pool. SQLite allows one writer at a
    time, so it gets a single worker.
    """

    def __init__(self, engine: Engine, max_workers: Optional[int] = None) -> None:
        super().__init__()
        self._engine = engine
        if max_workers is None:
            max_workers = 1 if engine.dialect.name == "sqlite" else 4
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="session-store"
        )

    async def _run(self, fn, *args):
        """Run a blocking DB call in the store's thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: fn(*args))

    async def _load(self, session_id: str) -> Optional[Session]:
        return await self._run(self._load_sync, session_id)

    async def _save(self, session: Session) -> None:
        await self._run(self._save_sync, session)

    async def _delete(self, session_id: str) -> bool:
        return await self._run(self._delete_sync, session_id)

    async def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._engine.dispose()

    def _load_sync(self, session_id: str) -> Optional[Session]:
        with DbSession(self._engine) as db:
            record = db.get(SessionRecord, session_id)
            return record.to_session() if record else None

    def _save_sync(self, session: Session) -> None:
        token_json = session.token_bundle.to_json() if session.token_bundle else None
        with DbSession(self._engine) as db:
            record = db.get(SessionRecord, session.session_id)
            if record is None:
                record = SessionRecord(session_id=session.session_id)
            record.token_json = token_json
            record.updated_at = utcnow()
            db.add(record)
            db.commit()

    def _delete_sync(self, session_id: str) -> bool:
        with DbSession(self._engine) as db:
            record = db.get(SessionRecord, session_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True
