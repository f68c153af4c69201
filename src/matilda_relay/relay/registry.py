"""Session registry.

Sessions live in an arena of slots addressed by generation-checked handles,
with an index from session id to handle. Every mutation (create, remove,
sweep eviction) goes through one lock, so a sweep and a normal connection
close can race on the same session id without double-removal. A stale handle
(its slot was swept and possibly reused) never removes the new occupant.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..core.config import setup_logging
from .exceptions import DuplicateSessionError
from .types import Session, SessionHandle, SessionMetadata

logger = setup_logging(__name__)

ExpireCallback = Callable[[], Awaitable[None]]


@dataclass
class _Slot:
    generation: int = 0
    session: Session | None = None
    on_expire: ExpireCallback | None = None


class SessionRegistry:
    """Single source of truth for which sessions are currently relaying audio."""

    def __init__(self) -> None:
        self._slots: list[_Slot] = []
        self._free: list[int] = []
        self._index: dict[str, SessionHandle] = {}
        self._lock = asyncio.Lock()
        self._sweep_lock = asyncio.Lock()
        self._sweeper_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._index

    async def create(
        self,
        session_id: str,
        metadata: SessionMetadata,
        on_expire: ExpireCallback | None = None,
    ) -> Session:
        """Register a new session.

        Args:
            session_id: Caller-supplied unique id
            metadata: Channel, conversation, language and model of the session
            on_expire: Awaited when a sweep evicts the session

        Returns:
            The new Session, carrying its registry handle

        Raises:
            DuplicateSessionError: If the id is already registered

        """
        async with self._lock:
            if session_id in self._index:
                raise DuplicateSessionError(session_id)

            if self._free:
                index = self._free.pop()
                slot = self._slots[index]
            else:
                index = len(self._slots)
                slot = _Slot()
                self._slots.append(slot)

            handle = SessionHandle(index=index, generation=slot.generation)
            session = Session.from_metadata(session_id, metadata)
            session.handle = handle
            slot.session = session
            slot.on_expire = on_expire
            self._index[session_id] = handle

        logger.info(f"Session registered: {session_id} (slot {index}, active={len(self._index)})")
        return session

    def get(self, session_id: str) -> Session | None:
        """Look up a live session without taking the mutation lock."""
        handle = self._index.get(session_id)
        if handle is None:
            return None
        slot = self._slots[handle.index]
        if slot.generation != handle.generation:
            return None
        return slot.session

    async def remove(self, session_id: str, handle: SessionHandle | None = None) -> bool:
        """Deregister a session. Removing an unknown session is a no-op.

        Args:
            session_id: Session to remove
            handle: When given, only the session occupying this exact
                slot generation is removed

        Returns:
            True if an entry was removed

        """
        async with self._lock:
            removed = self._release(session_id, handle)

        if removed is not None:
            logger.info(f"Session removed: {session_id} (active={len(self._index)})")
        return removed is not None

    def _release(self, session_id: str, handle: SessionHandle | None = None) -> _Slot | None:
        """Free the slot of a session. Caller must hold the mutation lock."""
        current = self._index.get(session_id)
        if current is None:
            return None
        if handle is not None and handle != current:
            return None

        slot = self._slots[current.index]
        released = _Slot(generation=slot.generation, session=slot.session, on_expire=slot.on_expire)
        slot.generation += 1
        slot.session = None
        slot.on_expire = None
        del self._index[session_id]
        self._free.append(current.index)
        return released

    async def sweep(self, max_idle_seconds: float) -> list[str]:
        """Evict every session at least ``max_idle_seconds`` old.

        Evicted sessions are signalled through their ``on_expire`` callback
        after the mutation lock is released, so the callback may call
        ``remove`` itself (it will find nothing to remove).

        Returns:
            Ids of the evicted sessions

        """
        async with self._sweep_lock:
            async with self._lock:
                expired = [
                    session_id
                    for session_id, handle in self._index.items()
                    if (session := self._slots[handle.index].session) is not None
                    and session.age_seconds >= max_idle_seconds
                ]
                released = [(session_id, self._release(session_id)) for session_id in expired]

            for session_id, slot in released:
                if slot is None:
                    continue
                logger.info(f"Cleaning up inactive session: {session_id}")
                if slot.on_expire is None:
                    continue
                try:
                    await slot.on_expire()
                except Exception as e:
                    logger.exception(f"Error closing expired session {session_id}: {e}")

        if expired:
            logger.info(f"Sweep removed {len(expired)} session(s), {len(self._index)} still active")
        return expired

    async def _sweep_forever(self, interval_seconds: float, max_idle_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep(max_idle_seconds)
            except Exception as e:
                logger.exception(f"Session sweep failed: {e}")

    def start_sweeper(self, interval_seconds: float, max_idle_seconds: float) -> asyncio.Task:
        """Run ``sweep`` on a fixed interval until ``stop_sweeper`` is called."""
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(self._sweep_forever(interval_seconds, max_idle_seconds))
            logger.debug(f"Session sweeper started (interval={interval_seconds}s, max_idle={max_idle_seconds}s)")
        return self._sweeper_task

    async def stop_sweeper(self) -> None:
        task, self._sweeper_task = self._sweeper_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def stats(self) -> dict:
        """Snapshot of active sessions for status endpoints."""
        live = (self.get(session_id) for session_id in list(self._index))
        sessions = [session.summary() for session in live if session is not None]
        return {
            "active_count": len(sessions),
            "total_audio_chunks": sum(s["audio_chunks_received"] for s in sessions),
            "total_bytes": sum(s["bytes_received"] for s in sessions),
            "sessions": sessions,
        }
