"""Tests for browser_relay.sessions."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from browser_relay.config import SessionsConfig, ViewportSize
from browser_relay.driver import CONSOLE, REQUEST_FAILED, REQUEST_STARTED, RESPONSE
from browser_relay.exceptions import SessionNotFound
from browser_relay.sessions import Session, SessionManager, SessionStore


# ---------------------------------------------------------------------------
# 1. resolve
# ---------------------------------------------------------------------------


class TestResolve:
    async def test_creates_session_with_given_id(self, session_manager, driver):
        session, session_id = await session_manager.resolve("abc")
        assert session_id == "abc"
        assert session.page is driver.pages[0]
        assert session.page.viewport == (1280, 800)
        assert len(session_manager) == 1

    async def test_known_id_reuses_page(self, session_manager, driver):
        first, _ = await session_manager.resolve("abc")
        again, _ = await session_manager.resolve("abc")
        assert again is first
        assert len(driver.called("new_page")) == 1

    async def test_no_id_uses_most_recently_created(self, session_manager):
        await session_manager.resolve("one")
        second, _ = await session_manager.resolve("two")
        await session_manager.resolve("one")
        latest, latest_id = await session_manager.resolve()
        assert latest is second
        assert latest_id == "two"

    async def test_no_id_and_no_sessions_synthesizes_id(self, session_manager):
        session, session_id = await session_manager.resolve()
        assert session_id.isdigit()
        assert session.id == session_id

    async def test_unknown_id_creates_session(self, session_manager):
        await session_manager.resolve("one")
        session, session_id = await session_manager.resolve("fresh")
        assert session_id == "fresh"
        assert len(session_manager) == 2

    async def test_concurrent_resolve_creates_one_page(self, session_manager, driver):
        results = await asyncio.gather(
            session_manager.resolve("same"), session_manager.resolve("same")
        )
        assert results[0][0] is results[1][0]
        assert len(driver.pages) == 1

    async def test_custom_viewport(self, driver):
        manager = SessionManager(driver, viewport=ViewportSize(width=800, height=600))
        session, _ = await manager.resolve("v")
        assert session.page.viewport == (800, 600)

    async def test_viewport_failure_closes_page(self, session_manager, driver):
        driver.failing["set_viewport"] = RuntimeError("target closed")
        with pytest.raises(RuntimeError):
            await session_manager.resolve("x")
        assert driver.pages[0].closed
        assert len(session_manager) == 0


# ---------------------------------------------------------------------------
# 2. close / get
# ---------------------------------------------------------------------------


class TestClose:
    async def test_close_releases_page(self, session_manager):
        session, _ = await session_manager.resolve("abc")
        assert await session_manager.close("abc") is True
        assert session.closed
        assert session.page.closed
        assert "abc" not in [s.id for s in session_manager.sessions()]

    async def test_close_unknown_is_noop(self, session_manager):
        assert await session_manager.close("ghost") is False

    async def test_close_detaches_listeners(self, session_manager):
        session, _ = await session_manager.resolve("abc")
        await session_manager.close("abc")
        assert all(not handlers for handlers in session.page.listeners.values())

    async def test_close_all(self, session_manager):
        await session_manager.resolve("a")
        await session_manager.resolve("b")
        await session_manager.close_all()
        assert len(session_manager) == 0

    async def test_get_strict(self, session_manager):
        with pytest.raises(SessionNotFound, match="Session ghost not found"):
            session_manager.get("ghost")
        with pytest.raises(SessionNotFound, match="Valid sessionId is required"):
            session_manager.get(None)


# ---------------------------------------------------------------------------
# 3. evict
# ---------------------------------------------------------------------------


class TestEvict:
    async def test_keeps_newest(self, session_manager):
        for i in range(5):
            await session_manager.resolve(f"s{i}")
        closed = await session_manager.evict()
        assert sorted(closed) == ["s0", "s1"]
        assert [s.id for s in session_manager.sessions()] == ["s2", "s3", "s4"]

    async def test_under_ceiling_is_noop(self, session_manager):
        await session_manager.resolve("only")
        assert await session_manager.evict() == []

    async def test_busy_session_skipped(self, session_manager):
        sessions = [(await session_manager.resolve(f"s{i}"))[0] for i in range(5)]
        async with sessions[0].lock:
            closed = await session_manager.evict()
        assert closed == ["s1"]
        assert "s0" in [s.id for s in session_manager.sessions()]
        # Picked up by the next sweep once idle.
        assert await session_manager.evict() == ["s0"]

    async def test_sweep_loop_evicts(self, session_manager):
        for i in range(4):
            await session_manager.resolve(f"s{i}")
        session_manager.start()
        try:
            for _ in range(50):
                if len(session_manager) == 3:
                    break
                await asyncio.sleep(0.01)
            assert [s.id for s in session_manager.sessions()] == ["s1", "s2", "s3"]
        finally:
            await session_manager.shutdown()
        assert len(session_manager) == 0


# ---------------------------------------------------------------------------
# 4. Monitoring buffers
# ---------------------------------------------------------------------------


class TestMonitoring:
    async def test_console_and_network_recorded(self, session_manager, driver):
        session, _ = await session_manager.resolve("m")
        page = session.page
        driver.emit(page, CONSOLE, SimpleNamespace(type="error", text="boom", location=""))
        driver.emit(page, REQUEST_STARTED, SimpleNamespace(url="https://a/", method="GET"))
        driver.emit(page, REQUEST_STARTED, SimpleNamespace(url="https://b/", method="POST"))
        driver.emit(page, RESPONSE, SimpleNamespace(url="https://a/", status=204))
        driver.emit(
            page, REQUEST_FAILED, SimpleNamespace(url="https://b/", failure="net::ERR")
        )

        assert [(e.type, e.text) for e in session.console_log] == [("error", "boom")]
        records = list(session.network_log)
        assert (records[0].method, records[0].status) == ("GET", 204)
        assert (records[1].method, records[1].failure) == ("POST", "net::ERR")

    async def test_buffers_are_capped(self, driver):
        manager = SessionManager(driver, SessionsConfig(max_log_entries=2))
        session, _ = await manager.resolve("m")
        for i in range(5):
            driver.emit(
                session.page, CONSOLE, SimpleNamespace(type="log", text=str(i), location="")
            )
        assert [e.text for e in session.console_log] == ["3", "4"]

    async def test_monitoring_installed_once(self, session_manager):
        session, _ = await session_manager.resolve("m")
        await session_manager.resolve("m")
        assert len(session.page.listeners[CONSOLE]) == 1


class TestSessionStore:
    def test_latest_and_duplicates(self):
        store = SessionStore()
        store.add(Session(id="a", page=object()))
        store.add(Session(id="b", page=object()))
        assert store.latest().id == "b"
        with pytest.raises(ValueError):
            store.add(Session(id="a", page=object()))

    def test_injected_store_is_used(self, driver):
        store = SessionStore()
        manager = SessionManager(driver, store=store)
        assert len(manager) == 0
        store.add(Session(id="pre", page=object()))
        assert manager.get("pre").id == "pre"
