"""
Session store with idle expiry.

Sessions give a client continuity across requests: a per-session context map
that prompt rendering falls back to, plus activity tracking. A session that
has been idle longer than the timeout is invisible to readers and is removed
by the periodic sweep.

Thread-safe; the sweep runs as an asyncio task between ``start()`` and
``stop()``.
"""

import asyncio
import contextlib
import copy
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Any

from proxmox_mpc.framework.errors import SessionLimitError

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One client session."""

    id: str
    client_id: str
    created_at: datetime
    last_activity: datetime
    context: dict[str, Any] = field(default_factory=dict)

    def idle_seconds(self, now: datetime) -> float:
        return (now - self.last_activity).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "clientId": self.client_id,
            "createdAt": self.created_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
            "context": copy.deepcopy(self.context),
        }


class SessionManager:
    """Creates, tracks and expires sessions.

    Args:
        timeout_seconds: Idle time after which a session expires
        sweep_interval_seconds: Interval of the background sweep
        max_sessions: Maximum concurrent sessions (0 = unlimited)
        clock: Wall-clock source, injectable for tests
    """

    def __init__(
        self,
        timeout_seconds: float = 1800,
        sweep_interval_seconds: float = 300,
        max_sessions: int = 0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.max_sessions = max_sessions
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._sessions: dict[str, Session] = {}
        self._lock = Lock()
        self._sweep_task: asyncio.Task | None = None

    def create(self, client_id: str) -> str:
        """Create a session with an empty context.

        Raises:
            SessionLimitError: ``max_sessions`` is reached
        """
        now = self._clock()
        session = Session(
            id=str(uuid.uuid4()), client_id=client_id, created_at=now, last_activity=now
        )
        with self._lock:
            if self.max_sessions and len(self._sessions) >= self.max_sessions:
                raise SessionLimitError(self.max_sessions)
            self._sessions[session.id] = session

        logger.info("Session created: %s (client %s)", session.id, client_id)
        return session.id

    def _live(self, session_id: str, now: datetime) -> Session | None:
        """Caller holds the lock."""
        session = self._sessions.get(session_id)
        if session is None or session.idle_seconds(now) > self.timeout_seconds:
            return None
        return session

    def get(self, session_id: str) -> Session | None:
        """Touch a live session and return a snapshot of it."""
        now = self._clock()
        with self._lock:
            session = self._live(session_id, now)
            if session is None:
                return None
            session.last_activity = now
            return replace(session, context=copy.deepcopy(session.context))

    def set_context(self, session_id: str, partial: Mapping[str, Any]) -> bool:
        """Shallow-merge ``partial`` into the session context.

        Returns:
            False when the session is absent or expired
        """
        now = self._clock()
        with self._lock:
            session = self._live(session_id, now)
            if session is None:
                return False
            session.context.update(copy.deepcopy(dict(partial)))
            session.last_activity = now
        return True

    def get_context(self, session_id: str) -> dict[str, Any]:
        """Copy of the session context; ``{}`` when absent or expired."""
        now = self._clock()
        with self._lock:
            session = self._live(session_id, now)
            if session is None:
                return {}
            session.last_activity = now
            return copy.deepcopy(session.context)

    def cleanup_expired(self) -> int:
        """Remove every session idle beyond the timeout.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        with self._lock:
            expired = [
                s for s in self._sessions.values() if s.idle_seconds(now) > self.timeout_seconds
            ]
            for session in expired:
                del self._sessions[session.id]

        for session in expired:
            logger.debug("Session expired and removed: %s (client %s)", session.id, session.client_id)
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    @property
    def sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> bool:
        """Start the sweep task on the running loop.

        Returns:
            False if it was already running
        """
        if self.sweeping:
            return False
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="session-sweep"
        )
        return True

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                removed = self.cleanup_expired()
            except Exception:
                logger.exception("Session sweep failed")
                continue
            if removed:
                logger.info("Session sweep removed %d expired sessions", removed)
