"""
Session Registry - In-memory authority for live sessions
========================================================
Holds the current Session snapshot for every known session id.

Reads are lock-free (they return an immutable snapshot). Every mutation
happens while holding that session's condition, which also wakes any task
blocked in ``wait_for``.

Usage:
    registry = SessionRegistry()
    registry.create("s1", now)

    async with registry.locked("s1") as entry:
        registry.apply_transition(entry, SessionState.CONNECTING)

    session = await registry.wait_for("s1", lambda s: s.credential is not None, timeout=30)
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ...core.exceptions import SessionAlreadyExistsError, SessionNotFoundError
from ...core.logger import StructuredLogger, get_logger
from ..models.session import Session, SessionState, is_valid_transition


class SessionEntry:
    """Registry slot: current snapshot plus the per-session condition."""

    __slots__ = ("snapshot", "condition", "removed")

    def __init__(self, snapshot: Session):
        self.snapshot = snapshot
        self.condition = asyncio.Condition(asyncio.Lock())
        self.removed = False

    @property
    def session_id(self) -> str:
        return self.snapshot.id


class SessionRegistry:
    """
    Explicitly constructed and injected; there is no module-level instance.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self._entries: Dict[str, SessionEntry] = {}
        self.logger = logger or get_logger("session_registry")

    # === Reads ===

    def get(self, session_id: str) -> Session:
        entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)
        return entry.snapshot

    def find(self, session_id: str) -> Optional[Session]:
        entry = self._entries.get(session_id)
        return entry.snapshot if entry else None

    def exists(self, session_id: str) -> bool:
        return session_id in self._entries

    def list(self) -> List[Session]:
        return [entry.snapshot for entry in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)

    # === Lifecycle ===

    def create(self, session_id: str, created_at: datetime) -> Session:
        """
        Register a new session in ``initializing``.

        Raises:
            SessionAlreadyExistsError: If the id is live; the existing entry is untouched
        """
        return self.admit(Session(id=session_id, state=SessionState.INITIALIZING, created_at=created_at))

    def admit(self, session: Session) -> Session:
        """Register a fully formed snapshot (startup recovery)."""
        if session.id in self._entries:
            raise SessionAlreadyExistsError(session.id)
        self._entries[session.id] = SessionEntry(session)
        self.logger.debug("session_registry.admitted", {
            "session_id": session.id,
            "state": session.state.value
        })
        return session

    @asynccontextmanager
    async def locked(self, session_id: str) -> AsyncIterator[SessionEntry]:
        """
        Hold the session's lock for a read-modify-write.

        Waiters are notified when the block exits, whatever it changed.

        Raises:
            SessionNotFoundError: If the session is unknown or was removed
                while waiting for the lock
        """
        entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)

        async with entry.condition:
            if entry.removed:
                raise SessionNotFoundError(session_id)
            try:
                yield entry
            finally:
                entry.condition.notify_all()

    def apply_transition(self, entry: SessionEntry, new_state: SessionState, **fields: Any) -> bool:
        """
        Swap in a new snapshot. Caller must hold ``entry.condition``.

        Invalid transitions and field combinations that break the Session
        invariants are logged and dropped.

        Returns:
            True if the snapshot was replaced
        """
        current = entry.snapshot
        if not is_valid_transition(current.state, new_state):
            self.logger.warning("session_registry.invalid_transition", {
                "session_id": current.id,
                "from_state": current.state.value,
                "to_state": new_state.value
            })
            return False

        try:
            updated = current.evolve(state=new_state, **fields)
        except ValueError as e:
            self.logger.warning("session_registry.invariant_violation", {
                "session_id": current.id,
                "from_state": current.state.value,
                "to_state": new_state.value,
                "error": str(e)
            })
            return False

        entry.snapshot = updated
        if current.state != new_state:
            self.logger.info("session_registry.state_changed", {
                "session_id": current.id,
                "from_state": current.state.value,
                "to_state": new_state.value
            })
        return True

    def remove(self, entry: SessionEntry) -> None:
        """Drop the entry. Caller must hold ``entry.condition``."""
        entry.removed = True
        if self._entries.get(entry.session_id) is entry:
            del self._entries[entry.session_id]
        self.logger.info("session_registry.removed", {"session_id": entry.session_id})

    async def wait_for(
        self,
        session_id: str,
        predicate: Callable[[Session], bool],
        timeout: float
    ) -> Session:
        """
        Block until ``predicate(snapshot)`` holds.

        Raises:
            SessionNotFoundError: If the session is removed while waiting
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)

        async with entry.condition:
            await asyncio.wait_for(
                entry.condition.wait_for(lambda: entry.removed or predicate(entry.snapshot)),
                timeout=timeout
            )
            if entry.removed:
                raise SessionNotFoundError(session_id)
            return entry.snapshot
