"""Shared fixtures for browser-relay tests."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from browser_relay.config import (
    ExtractionConfig,
    LivenessConfig,
    RelayConfig,
    SessionsConfig,
    TimeoutsConfig,
)
from browser_relay.driver import BrowserDriver
from browser_relay.exceptions import SelectorTimeout
from browser_relay.executor import ActionExecutor
from browser_relay.pipeline import ActionPipeline
from browser_relay.service import BrowserService
from browser_relay.sessions import SessionManager


# ---------------------------------------------------------------------------
# Fake driver
# ---------------------------------------------------------------------------


class FakePage:
    """Stand-in for a remote page handle."""

    def __init__(self) -> None:
        self.url = "about:blank"
        self.title = ""
        self.closed = False
        self.viewport: tuple[int, int] | None = None
        self.listeners: dict[str, list[Callable[[Any], None]]] = defaultdict(list)
        self.storage: dict[str, str] = {}
        self.cookies: list[dict[str, Any]] = []
        # Serialized <body> returned to the extractor.
        self.dom: dict[str, Any] | None = None
        # selector -> serialized element returned to inspect_element.
        self.elements: dict[str, dict[str, Any]] = {}


class FakeDriver(BrowserDriver):
    """In-memory ``BrowserDriver`` that records every call."""

    def __init__(self) -> None:
        self.pages: list[FakePage] = []
        self.calls: list[tuple[Any, ...]] = []
        self.running = True
        self.missing_selectors: set[str] = set()
        self.failing: dict[str, Exception] = {}
        self.screenshot_bytes = b"\x89PNG-fake"
        self.eval_result: Any = None
        self.title_error: Exception | None = None
        # Called with the page after click/click_at/press_key, e.g. to emit requests.
        self.on_input: Callable[[FakePage], None] | None = None

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.failing:
            raise self.failing[name]

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    def emit(self, page: FakePage, event: str, payload: Any = None) -> None:
        for handler in list(page.listeners[event]):
            handler(payload)

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        self._record("start")
        self.running = True

    async def stop(self) -> None:
        self._record("stop")
        self.running = False

    @property
    def is_running(self) -> bool:
        return self.running

    async def new_page(self) -> FakePage:
        self._record("new_page")
        page = FakePage()
        self.pages.append(page)
        return page

    async def close_page(self, page: FakePage) -> None:
        self._record("close_page", page)
        page.closed = True

    async def set_viewport(self, page: FakePage, width: int, height: int) -> None:
        self._record("set_viewport", width, height)
        page.viewport = (width, height)

    # -- Navigation & input --------------------------------------------------

    async def navigate(
        self, page: FakePage, url: str, wait_until: str, timeout_ms: int
    ) -> None:
        self._record("navigate", url, wait_until, timeout_ms)
        page.url = url

    async def wait_for_selector(
        self, page: FakePage, selector: str, timeout_ms: int
    ) -> None:
        self._record("wait_for_selector", selector, timeout_ms)
        if selector in self.missing_selectors:
            raise SelectorTimeout(selector, timeout_ms)

    def _input(self, page: FakePage) -> None:
        if self.on_input is not None:
            self.on_input(page)

    async def click(self, page: FakePage, selector: str) -> None:
        self._record("click", selector)
        self._input(page)

    async def click_at(self, page: FakePage, x: float, y: float) -> None:
        self._record("click_at", x, y)
        self._input(page)

    async def type_text(self, page: FakePage, selector: str, text: str) -> None:
        self._record("type_text", selector, text)

    async def keyboard_type(self, page: FakePage, text: str) -> None:
        self._record("keyboard_type", text)

    async def press_key(self, page: FakePage, key: str) -> None:
        self._record("press_key", key)
        self._input(page)

    async def select_option(self, page: FakePage, selector: str, value: str) -> None:
        self._record("select_option", selector, value)

    # -- Reading -------------------------------------------------------------

    async def screenshot(
        self, page: FakePage, selector: str | None = None, full_page: bool = False
    ) -> bytes:
        self._record("screenshot", selector, full_page)
        return self.screenshot_bytes

    async def evaluate(self, page: FakePage, script: str, arg: Any = None) -> Any:
        self._record("evaluate", arg)
        if isinstance(arg, dict) and "maxDepth" in arg:
            return page.dom
        if isinstance(arg, dict) and set(arg) == {"selector"}:
            return page.elements.get(arg["selector"])
        return self.eval_result

    async def read_cookies(
        self, page: FakePage, urls: list[str] | None = None
    ) -> list[dict[str, Any]]:
        self._record("read_cookies", urls)
        return list(page.cookies)

    async def read_local_storage(self, page: FakePage) -> dict[str, str]:
        self._record("read_local_storage")
        return dict(page.storage)

    async def write_local_storage(self, page: FakePage, items: dict[str, str]) -> None:
        self._record("write_local_storage", items)
        page.storage.update(items)

    def current_url(self, page: FakePage) -> str:
        return page.url

    async def current_title(self, page: FakePage) -> str:
        if self.title_error is not None:
            raise self.title_error
        return page.title

    # -- Events --------------------------------------------------------------

    def subscribe(self, page: FakePage, event: str, handler: Callable[[Any], None]) -> None:
        page.listeners[event].append(handler)

    def unsubscribe(
        self, page: FakePage, event: str, handler: Callable[[Any], None]
    ) -> None:
        page.listeners[event].remove(handler)


def dom(tag: str, text: str = "", attrs: dict[str, str] | None = None, *children):
    """Build a serialized DOM node the way the page-side script returns it."""
    return {
        "tag": tag,
        "attributes": [[k, v] for k, v in (attrs or {}).items()],
        "text": text,
        "children": list(children),
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def fast_timeouts():
    """Timeouts short enough that a settle wait never slows a test down."""
    return TimeoutsConfig(selector=100, navigation=1000, settle_idle=10, settle=50)


@pytest.fixture
def session_manager(driver):
    return SessionManager(driver, SessionsConfig(max_sessions=3, sweep_interval=0.01))


@pytest.fixture
def executor(driver, session_manager, fast_timeouts):
    return ActionExecutor(driver, session_manager, fast_timeouts)


@pytest.fixture
def pipeline(driver, executor):
    return ActionPipeline(driver, executor, ExtractionConfig())


@pytest.fixture
def sample_body():
    """<body><div><p>Hello</p><a href="#">Link</a><span>X</span><button>Go</button></div></body>"""
    return dom(
        "body",
        "HelloLinkXGo",
        None,
        dom(
            "div",
            "HelloLinkXGo",
            None,
            dom("p", "Hello"),
            dom("a", "Link", {"href": "#"}),
            dom("span", "X"),
            dom("button", "Go"),
        ),
    )


@pytest.fixture
def sink():
    """A liveness sink that records terminations instead of exiting."""
    return MagicMock()


@pytest.fixture
def relay_config(tmp_path, fast_timeouts):
    return RelayConfig(
        timeouts=fast_timeouts,
        sessions=SessionsConfig(max_sessions=3, sweep_interval=60),
        liveness=LivenessConfig(
            start_time_file=str(tmp_path / "start-time.txt"),
            threshold_minutes=60,
            memory_check_interval=60,
        ),
    )


@pytest.fixture
def service(driver, relay_config, sink):
    return BrowserService(driver, relay_config, sink=sink)
