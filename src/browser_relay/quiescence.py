"""Network quiescence detection.

A page is *quiet* once no requests have been in flight for a sustained idle
window.  ``NetworkIdleWatcher`` owns the request/finished/failed listeners
for the duration of one wait and always removes them on exit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from browser_relay.driver import (
    REQUEST_FAILED,
    REQUEST_FINISHED,
    REQUEST_STARTED,
    BrowserDriver,
    PageHandle,
)
from browser_relay.exceptions import QuiescenceTimeout

logger = logging.getLogger(__name__)


class NetworkIdleWatcher:
    """Scoped subscription to one page's request lifecycle events.

    Use as an async context manager; listeners are attached on entry and
    detached on every exit path, including cancellation::

        async with NetworkIdleWatcher(driver, page, idle_ms=500) as watcher:
            await watcher.wait(timeout_ms=5000)
    """

    def __init__(self, driver: BrowserDriver, page: PageHandle, idle_ms: int) -> None:
        self._driver = driver
        self._page = page
        self._idle_s = idle_ms / 1000
        self.inflight = 0
        self._idle: asyncio.Event = asyncio.Event()
        self._idle_timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscribed = False

    # -- Subscription scope --------------------------------------------------

    async def __aenter__(self) -> NetworkIdleWatcher:
        self._loop = asyncio.get_running_loop()
        self._driver.subscribe(self._page, REQUEST_STARTED, self._on_request)
        self._driver.subscribe(self._page, REQUEST_FINISHED, self._on_request_done)
        self._driver.subscribe(self._page, REQUEST_FAILED, self._on_request_done)
        self._subscribed = True
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._cancel_idle_timer()
        if self._subscribed:
            self._driver.unsubscribe(self._page, REQUEST_STARTED, self._on_request)
            self._driver.unsubscribe(
                self._page, REQUEST_FINISHED, self._on_request_done
            )
            self._driver.unsubscribe(self._page, REQUEST_FAILED, self._on_request_done)
            self._subscribed = False

    # -- Event handlers ------------------------------------------------------

    def _on_request(self, _request: Any) -> None:
        self.inflight += 1
        self._cancel_idle_timer()

    def _on_request_done(self, _request: Any) -> None:
        if self.inflight > 0:
            self.inflight -= 1
        if self.inflight == 0:
            self._arm_idle_timer()

    def _arm_idle_timer(self) -> None:
        self._cancel_idle_timer()
        assert self._loop is not None
        self._idle_timer = self._loop.call_later(self._idle_s, self._idle.set)

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    # -- Waiting -------------------------------------------------------------

    async def wait(self, timeout_ms: int) -> None:
        """Block until the idle window elapses, or raise ``QuiescenceTimeout``."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise QuiescenceTimeout(timeout_ms) from exc


async def wait_idle(
    driver: BrowserDriver,
    page: PageHandle,
    idle_ms: int = 500,
    timeout_ms: int = 30000,
) -> None:
    """Wait until *page* has had no in-flight requests for *idle_ms*.

    Raises ``QuiescenceTimeout`` when no such window is observed within
    *timeout_ms*.  If the page issues no requests at all the idle timer is
    never armed and the call always ends in a timeout.
    """
    async with NetworkIdleWatcher(driver, page, idle_ms) as watcher:
        await watcher.wait(timeout_ms)
