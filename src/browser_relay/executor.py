"""Single-action execution against the browser driver.

``ActionExecutor.execute`` never raises: every failure, including an
unsupported kind, ends up in the ``error`` field of the returned
``ActionResult``.  Handlers are looked up by kind as ``_do_<kind>`` methods.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from browser_relay.config import TimeoutsConfig
from browser_relay.driver import BrowserDriver
from browser_relay.exceptions import (
    ActionError,
    QuiescenceTimeout,
    UnsupportedActionKind,
)
from browser_relay.extractor import inspect_element
from browser_relay.models import (
    ActionResult,
    ClickAction,
    ClickCoordinatesAction,
    CloseAction,
    ExecuteScriptAction,
    InspectElementAction,
    InvalidAction,
    KeysAction,
    NavigateAction,
    PressAction,
    ReadCookiesAction,
    ReadStorageAction,
    ScreenshotAction,
    SelectAction,
    TypeAction,
    WaitAction,
    WriteStorageAction,
    _ActionBase,
)
from browser_relay.quiescence import NetworkIdleWatcher
from browser_relay.sessions import Session, SessionManager
from browser_relay.suggestions import suggest_selectors

logger = logging.getLogger(__name__)


def normalize_selector(selector: str) -> str:
    """Undo one level of JSON string encoding, if there is one.

    ``'"#login"'`` becomes ``'#login'``; anything that does not decode to a
    JSON string is returned unchanged.
    """
    try:
        decoded = json.loads(selector)
    except (TypeError, ValueError):
        return selector
    if isinstance(decoded, str):
        return decoded
    return selector


class ActionExecutor:
    """Runs one typed action for one session."""

    def __init__(
        self,
        driver: BrowserDriver,
        sessions: SessionManager,
        timeouts: TimeoutsConfig | None = None,
        wait_until: str = "networkidle",
    ) -> None:
        self._driver = driver
        self._sessions = sessions
        self._timeouts = timeouts or TimeoutsConfig()
        self._wait_until = wait_until

    async def execute(self, session: Session, action: _ActionBase) -> ActionResult:
        """Run *action*, capturing any failure into the result."""
        try:
            if isinstance(action, InvalidAction):
                raise ActionError(action.error)
            handler = getattr(self, f"_do_{action.kind.replace('-', '_')}", None)
            if handler is None:
                raise UnsupportedActionKind(action.kind)
            if session.closed:
                raise ActionError(f"Session {session.id} is closed")
            extras = await handler(session, action)
        except Exception as exc:
            logger.warning(f"Action {action.label!r} failed: {exc}")
            return ActionResult(type=action.label, success=False, error=str(exc))

        screenshot = extras.pop("screenshot", None)
        return ActionResult(
            type=action.label,
            success=True,
            screenshot=screenshot,
            **action.echo(),
            **extras,
        )

    # -- Helpers -------------------------------------------------------------

    async def _ready(self, session: Session, selector: str) -> str:
        """Normalize *selector* and wait for it to be attached."""
        clean = normalize_selector(selector)
        if clean != selector:
            logger.debug(f"Normalized selector {selector!r} -> {clean!r}")
        await self._driver.wait_for_selector(
            session.page, clean, self._timeouts.selector
        )
        return clean

    async def _settled(
        self, session: Session, act: Callable[[], Awaitable[None]]
    ) -> None:
        """Run *act*, then wait for the page to go network-idle.

        Listeners are attached before *act* so requests it triggers are
        counted.  A settle timeout is logged and otherwise ignored.
        """
        async with NetworkIdleWatcher(
            self._driver, session.page, self._timeouts.settle_idle
        ) as watcher:
            await act()
            try:
                await watcher.wait(self._timeouts.settle)
            except QuiescenceTimeout as exc:
                logger.info(f"Page did not settle for session {session.id}: {exc}")

    # -- Handlers ------------------------------------------------------------

    async def _do_navigate(
        self, session: Session, action: NavigateAction
    ) -> dict[str, Any]:
        await self._driver.navigate(
            session.page,
            action.url,
            action.wait_until or self._wait_until,
            self._timeouts.navigation,
        )
        return {}

    async def _do_click(self, session: Session, action: ClickAction) -> dict[str, Any]:
        selector = await self._ready(session, action.selector)
        await self._settled(
            session, lambda: self._driver.click(session.page, selector)
        )
        return {"selector": selector}

    async def _do_click_coordinates(
        self, session: Session, action: ClickCoordinatesAction
    ) -> dict[str, Any]:
        await self._settled(
            session, lambda: self._driver.click_at(session.page, action.x, action.y)
        )
        return {}

    async def _do_type(self, session: Session, action: TypeAction) -> dict[str, Any]:
        selector = await self._ready(session, action.selector)
        await self._driver.type_text(session.page, selector, action.value)
        if action.submit:
            await self._settled(
                session, lambda: self._driver.press_key(session.page, "Enter")
            )
        return {"selector": selector}

    async def _do_keys(self, session: Session, action: KeysAction) -> dict[str, Any]:
        await self._driver.keyboard_type(session.page, action.keys)
        return {}

    async def _do_press(self, session: Session, action: PressAction) -> dict[str, Any]:
        await self._settled(
            session, lambda: self._driver.press_key(session.page, action.key)
        )
        return {}

    async def _do_select(
        self, session: Session, action: SelectAction
    ) -> dict[str, Any]:
        selector = await self._ready(session, action.selector)
        await self._driver.select_option(session.page, selector, action.value)
        return {"selector": selector}

    async def _do_wait(self, session: Session, action: WaitAction) -> dict[str, Any]:
        duration = min(max(action.duration_ms, 0), self._timeouts.max_wait)
        await asyncio.sleep(duration / 1000)
        return {}

    async def _do_screenshot(
        self, session: Session, action: ScreenshotAction
    ) -> dict[str, Any]:
        selector = None
        if action.selector:
            selector = await self._ready(session, action.selector)
        data = await self._driver.screenshot(
            session.page, selector, full_page=action.full_page
        )
        return {"screenshot": base64.b64encode(data).decode("ascii")}

    async def _do_execute_script(
        self, session: Session, action: ExecuteScriptAction
    ) -> dict[str, Any]:
        result = await self._driver.evaluate(session.page, action.script, action.arg)
        return {"result": result}

    async def _do_read_cookies(
        self, session: Session, action: ReadCookiesAction
    ) -> dict[str, Any]:
        cookies = await self._driver.read_cookies(session.page, action.urls)
        return {"cookies": cookies}

    async def _do_read_storage(
        self, session: Session, action: ReadStorageAction
    ) -> dict[str, Any]:
        items = await self._driver.read_local_storage(session.page)
        if action.key is not None:
            return {"value": items.get(action.key)}
        return {"items": items}

    async def _do_write_storage(
        self, session: Session, action: WriteStorageAction
    ) -> dict[str, Any]:
        entries = action.entries()
        if not entries:
            raise ActionError("key or items required for write-storage action")
        await self._driver.write_local_storage(session.page, entries)
        return {"keys": list(entries)}

    async def _do_close(self, session: Session, action: CloseAction) -> dict[str, Any]:
        await self._sessions.close(session.id)
        return {}

    async def _do_inspect_element(
        self, session: Session, action: InspectElementAction
    ) -> dict[str, Any]:
        selector = await self._ready(session, action.selector)
        element = await inspect_element(self._driver, session.page, selector)
        if element is None:
            raise ActionError(f"No element matches selector {selector}")
        return {
            "selector": selector,
            "element": element.to_wire(),
            "selectors": suggest_selectors(element),
        }
