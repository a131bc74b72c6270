"""Patchright-backed implementation of ``BrowserDriver``.

One browser and one context are shared by every session; each session owns
a single page.  Launch options come straight from ``BrowserConfig``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from patchright.async_api import TimeoutError as PlaywrightTimeoutError
from patchright.async_api import async_playwright

from browser_relay.config import BrowserConfig
from browser_relay.driver import BrowserDriver, EventHandler
from browser_relay.exceptions import DriverUnavailable, SelectorTimeout

logger = logging.getLogger(__name__)

_READ_STORAGE_JS = """
() => {
    const items = {};
    for (let i = 0; i < window.localStorage.length; i++) {
        const key = window.localStorage.key(i);
        items[key] = window.localStorage.getItem(key);
    }
    return items;
}
"""

_WRITE_STORAGE_JS = """
(items) => {
    for (const [key, value] of Object.entries(items)) {
        window.localStorage.setItem(key, value);
    }
}
"""


class PatchrightDriver(BrowserDriver):
    """Drives pages of a single Patchright browser context."""

    def __init__(self, config: BrowserConfig) -> None:
        self.config = config
        self.playwright: Any = None
        self.browser: Any = None
        self.context: Any = None

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Launch the browser and open the shared context."""
        cfg = self.config
        self.playwright = await async_playwright().start()
        browser_type = getattr(self.playwright, cfg.browser_name)
        self.browser = await browser_type.launch(**cfg.launch_options)
        self.context = await self.browser.new_context(**cfg.context_options)
        logger.info(f"Browser initialized ({cfg.browser_name})")

    async def stop(self) -> None:
        """Close the context, the browser and the Playwright driver."""
        try:
            if self.context is not None:
                await self.context.close()
            if self.browser is not None:
                await self.browser.close()
            if self.playwright is not None:
                await self.playwright.stop()
        except Exception:
            logger.exception("Error while shutting down the browser")
        finally:
            self.context = None
            self.browser = None
            self.playwright = None

    @property
    def is_running(self) -> bool:
        return self.browser is not None and self.browser.is_connected()

    async def new_page(self) -> Any:
        if self.context is None:
            raise DriverUnavailable("Browser is not running")
        return await self.context.new_page()

    async def close_page(self, page: Any) -> None:
        if not page.is_closed():
            await page.close()

    async def set_viewport(self, page: Any, width: int, height: int) -> None:
        await page.set_viewport_size({"width": width, "height": height})

    # -- Navigation & input --------------------------------------------------

    async def navigate(
        self, page: Any, url: str, wait_until: str, timeout_ms: int
    ) -> None:
        await page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def wait_for_selector(
        self, page: Any, selector: str, timeout_ms: int
    ) -> None:
        try:
            await page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise SelectorTimeout(selector, timeout_ms) from exc

    async def click(self, page: Any, selector: str) -> None:
        await page.locator(selector).first.click()

    async def click_at(self, page: Any, x: float, y: float) -> None:
        await page.mouse.click(x, y)

    async def type_text(self, page: Any, selector: str, text: str) -> None:
        await page.locator(selector).first.press_sequentially(text)

    async def keyboard_type(self, page: Any, text: str) -> None:
        await page.keyboard.type(text)

    async def press_key(self, page: Any, key: str) -> None:
        await page.keyboard.press(key)

    async def select_option(self, page: Any, selector: str, value: str) -> None:
        await page.locator(selector).first.select_option(value)

    # -- Reading -------------------------------------------------------------

    async def screenshot(
        self, page: Any, selector: str | None = None, full_page: bool = False
    ) -> bytes:
        if selector:
            return await page.locator(selector).first.screenshot()
        return await page.screenshot(full_page=full_page)

    async def evaluate(self, page: Any, script: str, arg: Any = None) -> Any:
        result = await page.evaluate(script, arg)
        # Round-trip through JSON so callers only ever see plain data.
        return json.loads(json.dumps(result, default=str))

    async def read_cookies(
        self, page: Any, urls: list[str] | None = None
    ) -> list[dict[str, Any]]:
        return await page.context.cookies(urls or [page.url])

    async def read_local_storage(self, page: Any) -> dict[str, str]:
        return await page.evaluate(_READ_STORAGE_JS)

    async def write_local_storage(self, page: Any, items: dict[str, str]) -> None:
        await page.evaluate(_WRITE_STORAGE_JS, items)

    def current_url(self, page: Any) -> str:
        return page.url

    async def current_title(self, page: Any) -> str:
        return await page.title()

    # -- Events --------------------------------------------------------------

    def subscribe(self, page: Any, event: str, handler: EventHandler) -> None:
        page.on(event, handler)

    def unsubscribe(self, page: Any, event: str, handler: EventHandler) -> None:
        page.remove_listener(event, handler)
