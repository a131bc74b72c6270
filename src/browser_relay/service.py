"""Facade wiring the orchestration components together.

A transport only ever talks to ``BrowserService``; it owns the session
manager, the executor and pipeline built on top of it, and the liveness
policy that is notified after every batch.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import asdict
from typing import Any

from browser_relay.config import RelayConfig
from browser_relay.driver import BrowserDriver
from browser_relay.exceptions import DriverUnavailable, RelayError
from browser_relay.executor import ActionExecutor, normalize_selector
from browser_relay.extractor import extract_page
from browser_relay.liveness import LivenessSink, LivenessTimer, MemoryMonitor
from browser_relay.models import (
    BatchRequest,
    BatchResponse,
    ExtractionOptions,
    SessionInfo,
    parse_action,
)
from browser_relay.pipeline import ActionPipeline, to_data_uri
from browser_relay.sessions import Session, SessionManager, SessionStore
from browser_relay.suggestions import recommend_actions

logger = logging.getLogger(__name__)


class BrowserService:
    def __init__(
        self,
        driver: BrowserDriver,
        config: RelayConfig | None = None,
        sink: LivenessSink | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self.config = config or RelayConfig()
        self.driver = driver
        self.sessions = SessionManager(
            driver, self.config.sessions, self.config.browser.viewport, store
        )
        self.executor = ActionExecutor(
            driver, self.sessions, self.config.timeouts, self.config.browser.wait_until
        )
        self.pipeline = ActionPipeline(driver, self.executor, self.config.extraction)

        self.liveness: LivenessTimer | None = None
        self.memory: MemoryMonitor | None = None
        if self.config.liveness.enabled:
            self.liveness = LivenessTimer.from_config(self.config.liveness, sink)
            self.memory = MemoryMonitor.from_config(self.config.liveness, sink)

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Start the driver and the background sweeps, and reset the uptime clock."""
        await self.driver.start()
        self.sessions.start()
        if self.liveness is not None:
            self.liveness.mark_start()
        if self.memory is not None:
            self.memory.start()
        logger.info("Browser service started")

    async def close(self) -> None:
        """Close every session and the browser."""
        if self.memory is not None:
            await self.memory.close()
        if self.liveness is not None:
            self.liveness.cancel()
        await self.sessions.shutdown()
        await self.driver.stop()
        logger.info("Browser service closed")

    def mark_start(self) -> None:
        if self.liveness is not None:
            self.liveness.mark_start()

    def tick(self) -> None:
        if self.liveness is not None:
            self.liveness.tick()

    # -- Sessions ------------------------------------------------------------

    async def resolve_session(
        self, session_id: str | None = None
    ) -> tuple[Session, str]:
        if not self.driver.is_running:
            raise DriverUnavailable("Browser is not running")
        try:
            return await self.sessions.resolve(session_id)
        except RelayError:
            raise
        except Exception as exc:
            raise DriverUnavailable(f"Could not open a page: {exc}") from exc

    async def close_session(self, session_id: str) -> bool:
        return await self.sessions.close(session_id)

    async def list_sessions(self) -> list[SessionInfo]:
        infos: list[SessionInfo] = []
        for session in self.sessions.sessions():
            url, title = await self._page_identity(session)
            infos.append(
                SessionInfo(
                    session_id=session.id,
                    url=url,
                    title=title,
                    created_at=session.created_at,
                )
            )
        return infos

    def session_logs(self, session_id: str) -> dict[str, Any]:
        """Console and network activity recorded for *session_id*."""
        session = self.sessions.get(session_id)
        return {
            "sessionId": session.id,
            "console": [asdict(entry) for entry in session.console_log],
            "network": [asdict(record) for record in session.network_log],
        }

    # -- Operations ----------------------------------------------------------

    async def run_actions(self, payload: Any) -> BatchResponse:
        """Validate and run one batch, then notify the liveness policy."""
        request = BatchRequest.parse(payload)
        actions = [parse_action(raw) for raw in request.actions]
        session, _ = await self.resolve_session(request.session_id)
        try:
            return await self.pipeline.run(session, actions, request.element_options)
        finally:
            self.tick()

    async def extract(
        self,
        session_id: str,
        options: ExtractionOptions | dict[str, Any] | None = None,
        recommend: bool = False,
    ) -> dict[str, Any]:
        """Extract elements from an existing session's current page."""
        session = self.sessions.get(session_id)
        if isinstance(options, dict):
            options = ExtractionOptions.model_validate(options)

        async with session.lock:
            url, title = await self._page_identity(session)
            elements = await extract_page(
                self.driver,
                session.page,
                options or self.pipeline.default_options(url or ""),
            )

        result: dict[str, Any] = {
            "success": True,
            "sessionId": session.id,
            "url": url,
            "title": title,
            "elements": [e.to_wire() for e in elements],
        }
        if recommend:
            result["suggestedActions"] = recommend_actions(elements)
        return result

    async def screenshot(
        self, session_id: str, selector: str | None = None
    ) -> dict[str, Any]:
        """Capture the page, or one element of it, of an existing session."""
        session = self.sessions.get(session_id)
        async with session.lock:
            clean = None
            if selector:
                clean = normalize_selector(selector)
                await self.driver.wait_for_selector(
                    session.page, clean, self.config.timeouts.selector
                )
            data = await self.driver.screenshot(session.page, clean)
        return {
            "success": True,
            "sessionId": session.id,
            "screenshot": to_data_uri(base64.b64encode(data).decode("ascii")),
        }

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "browser": "running" if self.driver.is_running else "not running",
            "activeSessions": len(self.sessions),
            "liveness": self.liveness.state.value if self.liveness else "disabled",
        }

    async def _page_identity(self, session: Session) -> tuple[str | None, str | None]:
        try:
            url = self.driver.current_url(session.page)
        except Exception:
            logger.debug(f"Could not read URL for session {session.id}", exc_info=True)
            return None, None
        try:
            title = await self.driver.current_title(session.page)
        except Exception:
            title = None
        return url, title
