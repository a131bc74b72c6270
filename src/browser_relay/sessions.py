"""Session ownership: id -> page handle, monitoring buffers, eviction.

The ``SessionManager`` is the only component that creates or closes pages.
Map mutations are serialised by one ``asyncio.Lock``; each session also has
its own lock which the pipeline holds for the duration of a batch, so the
periodic eviction sweep can tell which sessions are busy and skip them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from browser_relay.config import SessionsConfig, ViewportSize
from browser_relay.driver import (
    CONSOLE,
    REQUEST_FAILED,
    REQUEST_STARTED,
    RESPONSE,
    BrowserDriver,
    EventHandler,
    PageHandle,
)
from browser_relay.exceptions import SessionNotFound
from browser_relay.models import LogEntry, RequestRecord

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A live page plus the console/network activity seen on it."""

    id: str
    page: PageHandle
    created_at: float = field(default_factory=time.time)
    console_log: deque[LogEntry] = field(default_factory=deque)
    network_log: deque[RequestRecord] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    closed: bool = False
    _listeners: list[tuple[str, EventHandler]] = field(default_factory=list)

    @property
    def busy(self) -> bool:
        """``True`` while a batch is running against this session."""
        return self.lock.locked()

    @property
    def monitoring(self) -> bool:
        return bool(self._listeners)


class SessionStore:
    """Insertion-ordered arena of sessions keyed by id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def add(self, session: Session) -> None:
        if session.id in self._sessions:
            raise ValueError(f"Session {session.id} already exists")
        self._sessions[session.id] = session

    def pop(self, session_id: str) -> Session | None:
        return self._sessions.pop(session_id, None)

    def latest(self) -> Session | None:
        """Return the most recently created session."""
        if not self._sessions:
            return None
        return next(reversed(self._sessions.values()))


class SessionManager:
    """Creates, reuses and evicts sessions for one ``BrowserDriver``."""

    def __init__(
        self,
        driver: BrowserDriver,
        config: SessionsConfig | None = None,
        viewport: ViewportSize | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self._driver = driver
        self._config = config or SessionsConfig()
        self._viewport = viewport or ViewportSize()
        self._store = store if store is not None else SessionStore()
        self._lock = asyncio.Lock()
        self._sweep_task: asyncio.Task[None] | None = None

    # ── lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        """Start the background eviction sweep."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def shutdown(self) -> None:
        """Stop the sweep and close every session."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        await self.close_all()

    # ── public API ──────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._store)

    def sessions(self) -> list[Session]:
        """Sessions in creation order."""
        return list(self._store)

    def get(self, session_id: str | None) -> Session:
        """Return an existing session or raise ``SessionNotFound``."""
        session = self._store.get(session_id) if session_id else None
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def resolve(self, session_id: str | None = None) -> tuple[Session, str]:
        """Find or create the session a batch should run against.

        1. A known *session_id* returns that session.
        2. No *session_id* with sessions open returns the last created one.
        3. Otherwise a new session is created, with an id derived from the
           current time when none was supplied.
        """
        async with self._lock:
            session: Session | None = None
            if session_id and session_id in self._store:
                logger.debug(f"Using existing session {session_id}")
                session = self._store.get(session_id)
            elif not session_id and len(self._store) > 0:
                session = self._store.latest()
                logger.debug(f"Using last session {session.id}")
            if session is None:
                session = await self._create(session_id or self._generate_id())
            self._ensure_monitoring(session)
            return session, session.id

    async def close(self, session_id: str) -> bool:
        """Close *session_id*.  Returns ``False`` when it was not open."""
        async with self._lock:
            session = self._store.pop(session_id)
        if session is None:
            return False
        await self._release(session)
        logger.info(f"Session {session_id} closed")
        return True

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._store)
            for session in sessions:
                self._store.pop(session.id)
        for session in sessions:
            await self._release(session)

    async def evict(self) -> list[str]:
        """Close all but the newest ``max_sessions`` sessions.

        Sessions with a batch in flight are skipped and left for the next
        sweep.  Returns the ids that were closed.
        """
        ceiling = self._config.max_sessions
        async with self._lock:
            if len(self._store) <= ceiling:
                return []
            newest_first = sorted(
                reversed(list(self._store)), key=lambda s: s.created_at, reverse=True
            )
            to_close: list[Session] = []
            for session in newest_first[ceiling:]:
                if session.busy:
                    logger.debug(f"Skipping eviction of busy session {session.id}")
                    continue
                self._store.pop(session.id)
                to_close.append(session)

        for session in to_close:
            logger.info(f"Evicting session {session.id} (over limit of {ceiling})")
            await self._release(session)
        return [s.id for s in to_close]

    # ── internals ───────────────────────────────────────────────

    def _generate_id(self) -> str:
        candidate = int(time.time() * 1000)
        while str(candidate) in self._store:
            candidate += 1
        return str(candidate)

    async def _create(self, session_id: str) -> Session:
        logger.info(f"Creating new session {session_id}")
        page = await self._driver.new_page()
        try:
            await self._driver.set_viewport(
                page, self._viewport.width, self._viewport.height
            )
        except Exception:
            await self._driver.close_page(page)
            raise
        max_entries = self._config.max_log_entries
        session = Session(
            id=session_id,
            page=page,
            console_log=deque(maxlen=max_entries),
            network_log=deque(maxlen=max_entries),
        )
        self._store.add(session)
        return session

    def _ensure_monitoring(self, session: Session) -> None:
        if session.monitoring:
            return

        def _on_console(msg: Any) -> None:
            session.console_log.append(
                LogEntry(
                    type=str(getattr(msg, "type", "log")),
                    text=str(getattr(msg, "text", "")),
                    location=str(getattr(msg, "location", "")),
                )
            )

        def _on_request(req: Any) -> None:
            session.network_log.append(
                RequestRecord(
                    url=req.url,
                    method=req.method,
                    headers=dict(getattr(req, "headers", None) or {}),
                    resource_type=getattr(req, "resource_type", "") or "",
                )
            )

        def _find_pending(url: str) -> RequestRecord | None:
            # Walk backwards to find the matching request entry
            for entry in reversed(session.network_log):
                if entry.url == url and entry.pending:
                    return entry
            return None

        def _on_response(resp: Any) -> None:
            entry = _find_pending(resp.url)
            if entry is not None:
                entry.status = resp.status

        def _on_request_failed(req: Any) -> None:
            entry = _find_pending(req.url)
            if entry is not None:
                entry.failure = str(getattr(req, "failure", None) or "failed")

        listeners: list[tuple[str, EventHandler]] = [
            (CONSOLE, _on_console),
            (REQUEST_STARTED, _on_request),
            (RESPONSE, _on_response),
            (REQUEST_FAILED, _on_request_failed),
        ]
        for event, handler in listeners:
            self._driver.subscribe(session.page, event, handler)
        session._listeners = listeners

    async def _release(self, session: Session) -> None:
        """Detach monitoring and close the page.  Never raises."""
        session.closed = True
        for event, handler in session._listeners:
            try:
                self._driver.unsubscribe(session.page, event, handler)
            except Exception:
                logger.debug(f"Could not detach {event} listener", exc_info=True)
        session._listeners = []
        try:
            await self._driver.close_page(session.page)
        except Exception:
            logger.warning(f"Error closing page for session {session.id}", exc_info=True)

    async def _sweep_loop(self) -> None:
        """Periodically enforce the session ceiling."""
        while True:
            await asyncio.sleep(self._config.sweep_interval)
            try:
                await self.evict()
            except Exception:
                logger.exception("Session eviction sweep failed")
