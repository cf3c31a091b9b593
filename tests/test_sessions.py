"""Tests for SessionManager: lifecycle, isolation and the expiry sweep."""

import asyncio

import pytest

from proxmox_mpc.framework.errors import SessionLimitError
from proxmox_mpc.server.sessions import SessionManager
from tests.conftest import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(clock: FakeClock) -> SessionManager:
    return SessionManager(timeout_seconds=1800, sweep_interval_seconds=300, clock=clock)


class TestSessionLifecycle:
    """create / get / context operations."""

    def test_create_returns_distinct_ids(self, sessions: SessionManager) -> None:
        first = sessions.create("client-a")
        second = sessions.create("client-a")

        assert first != second
        assert len(sessions) == 2  # noqa: PLR2004

    def test_new_session_has_empty_context(self, sessions: SessionManager, clock: FakeClock) -> None:
        session_id = sessions.create("client-a")
        session = sessions.get(session_id)

        assert session is not None
        assert session.client_id == "client-a"
        assert session.context == {}
        assert session.created_at == clock.now

    def test_contexts_are_isolated(self, sessions: SessionManager) -> None:
        """Writing one session's context is never visible in another."""
        first = sessions.create("client-a")
        second = sessions.create("client-b")

        sessions.set_context(first, {"node": "pve1"})

        assert sessions.get_context(first) == {"node": "pve1"}
        assert sessions.get_context(second) == {}

    def test_set_context_merges_shallowly(self, sessions: SessionManager) -> None:
        session_id = sessions.create("client-a")
        sessions.set_context(session_id, {"node": "pve1", "tags": {"env": "lab"}})
        sessions.set_context(session_id, {"tags": {"owner": "ops"}})

        assert sessions.get_context(session_id) == {"node": "pve1", "tags": {"owner": "ops"}}

    def test_context_is_copied_in_and_out(self, sessions: SessionManager) -> None:
        session_id = sessions.create("client-a")
        partial = {"tags": ["web"]}
        sessions.set_context(session_id, partial)

        partial["tags"].append("db")
        returned = sessions.get_context(session_id)
        returned["tags"].append("cache")

        assert sessions.get_context(session_id) == {"tags": ["web"]}

    def test_absent_session(self, sessions: SessionManager) -> None:
        assert sessions.get("missing") is None
        assert sessions.set_context("missing", {"a": 1}) is False
        assert sessions.get_context("missing") == {}

    def test_max_sessions(self, clock: FakeClock) -> None:
        sessions = SessionManager(max_sessions=1, clock=clock)
        sessions.create("client-a")

        with pytest.raises(SessionLimitError):
            sessions.create("client-b")


class TestSessionExpiry:
    """Idle timeout and cleanup."""

    def test_activity_keeps_session_alive(self, sessions: SessionManager, clock: FakeClock) -> None:
        session_id = sessions.create("client-a")

        clock.advance(1000)
        assert sessions.get(session_id) is not None
        clock.advance(1000)

        assert sessions.get(session_id) is not None
        assert sessions.cleanup_expired() == 0

    def test_idle_session_is_removed(self, sessions: SessionManager, clock: FakeClock) -> None:
        idle = sessions.create("client-a")
        clock.advance(1200)
        active = sessions.create("client-b")
        clock.advance(700)

        assert sessions.cleanup_expired() == 1
        assert len(sessions) == 1
        assert sessions.get(active) is not None

    def test_expired_session_is_not_touched_back_to_life(
        self, sessions: SessionManager, clock: FakeClock
    ) -> None:
        session_id = sessions.create("client-a")
        clock.advance(1801)

        assert sessions.get(session_id) is None
        assert sessions.set_context(session_id, {"a": 1}) is False
        assert sessions.cleanup_expired() == 1
        assert len(sessions) == 0

    @pytest.mark.asyncio
    async def test_background_sweep(self, clock: FakeClock) -> None:
        """The sweep removes idle sessions without any request traffic."""
        sessions = SessionManager(timeout_seconds=60, sweep_interval_seconds=0.01, clock=clock)
        session_id = sessions.create("client-a")
        clock.advance(61)

        assert sessions.start() is True
        assert sessions.start() is False
        try:
            for _ in range(100):
                if len(sessions) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await sessions.stop()

        assert len(sessions) == 0
        assert sessions.sweeping is False

    @pytest.mark.asyncio
    async def test_stop_without_start(self, sessions: SessionManager) -> None:
        await sessions.stop()

        assert sessions.sweeping is False
