"""Abstract browser driver capability set.

The orchestration core never launches or talks to a browser directly.  It is
handed a ``BrowserDriver`` at construction and treats page handles as opaque
values owned by that driver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

PageHandle = Any
EventHandler = Callable[[Any], None]

# Per-page event names the core subscribes to.
REQUEST_STARTED = "request"
REQUEST_FINISHED = "requestfinished"
REQUEST_FAILED = "requestfailed"
RESPONSE = "response"
CONSOLE = "console"


class BrowserDriver(ABC):
    """Capabilities the core consumes for controlling remote pages."""

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Prepare the driver for use.  No-op by default."""

    async def stop(self) -> None:
        """Release every driver-held resource.  No-op by default."""

    @property
    def is_running(self) -> bool:
        return True

    @abstractmethod
    async def new_page(self) -> PageHandle: ...

    @abstractmethod
    async def close_page(self, page: PageHandle) -> None: ...

    @abstractmethod
    async def set_viewport(self, page: PageHandle, width: int, height: int) -> None: ...

    # -- Navigation & input --------------------------------------------------

    @abstractmethod
    async def navigate(
        self, page: PageHandle, url: str, wait_until: str, timeout_ms: int
    ) -> None: ...

    @abstractmethod
    async def wait_for_selector(
        self, page: PageHandle, selector: str, timeout_ms: int
    ) -> None:
        """Resolve once *selector* is attached; raise ``SelectorTimeout`` otherwise."""

    @abstractmethod
    async def click(self, page: PageHandle, selector: str) -> None: ...

    @abstractmethod
    async def click_at(self, page: PageHandle, x: float, y: float) -> None: ...

    @abstractmethod
    async def type_text(self, page: PageHandle, selector: str, text: str) -> None: ...

    @abstractmethod
    async def keyboard_type(self, page: PageHandle, text: str) -> None: ...

    @abstractmethod
    async def press_key(self, page: PageHandle, key: str) -> None: ...

    @abstractmethod
    async def select_option(
        self, page: PageHandle, selector: str, value: str
    ) -> None: ...

    # -- Reading -------------------------------------------------------------

    @abstractmethod
    async def screenshot(
        self, page: PageHandle, selector: str | None = None, full_page: bool = False
    ) -> bytes: ...

    @abstractmethod
    async def evaluate(self, page: PageHandle, script: str, arg: Any = None) -> Any: ...

    @abstractmethod
    async def read_cookies(
        self, page: PageHandle, urls: list[str] | None = None
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def read_local_storage(self, page: PageHandle) -> dict[str, str]: ...

    @abstractmethod
    async def write_local_storage(
        self, page: PageHandle, items: dict[str, str]
    ) -> None: ...

    @abstractmethod
    def current_url(self, page: PageHandle) -> str: ...

    @abstractmethod
    async def current_title(self, page: PageHandle) -> str: ...

    # -- Events --------------------------------------------------------------

    @abstractmethod
    def subscribe(self, page: PageHandle, event: str, handler: EventHandler) -> None: ...

    @abstractmethod
    def unsubscribe(
        self, page: PageHandle, event: str, handler: EventHandler
    ) -> None: ...
