"""Batch execution: run every action in order, then snapshot the page."""

from __future__ import annotations

import base64
import logging
from typing import Any

from browser_relay.config import ExtractionConfig, ExtractionDefaults
from browser_relay.driver import BrowserDriver
from browser_relay.exceptions import SnapshotError
from browser_relay.executor import ActionExecutor
from browser_relay.extractor import extract_page
from browser_relay.hosts import is_local_url, is_scrapable_url
from browser_relay.models import (
    ActionResult,
    BatchResponse,
    ExtractionOptions,
    _ActionBase,
    parse_action,
)
from browser_relay.sessions import Session

logger = logging.getLogger(__name__)

PNG_DATA_URI_PREFIX = "data:image/png;base64,"


def to_data_uri(encoded: str) -> str:
    return f"{PNG_DATA_URI_PREFIX}{encoded}"


class ActionPipeline:
    """Runs one batch of actions against one session.

    Every action is executed, in submission order, even after a failure;
    the response carries exactly one result per submitted action.  The
    session lock is held for the whole batch so the eviction sweep leaves
    the session alone while it runs.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        executor: ActionExecutor,
        extraction: ExtractionConfig | None = None,
    ) -> None:
        self._driver = driver
        self._executor = executor
        self._extraction = extraction or ExtractionConfig()

    async def run(
        self,
        session: Session,
        actions: list[Any],
        element_options: ExtractionOptions | None = None,
    ) -> BatchResponse:
        # Parse up front so a malformed entry aborts before anything runs.
        parsed = [
            raw if isinstance(raw, _ActionBase) else parse_action(raw)
            for raw in actions
        ]

        async with session.lock:
            results: list[ActionResult] = []
            for action in parsed:
                results.append(await self._executor.execute(session, action))

            response = BatchResponse(session_id=session.id, actions=results)
            if not session.closed:
                await self._snapshot(session, response, element_options)
            response.screenshot = await self._attach_screenshot(session, results)

        failed = sum(1 for r in results if not r.success)
        logger.info(
            f"Session {session.id}: ran {len(results)} actions ({failed} failed)"
        )
        return response

    def default_options(self, url: str) -> ExtractionOptions:
        """Extraction budget for *url* when the caller gave none."""
        defaults: ExtractionDefaults
        if is_local_url(url, self._extraction.known_local_hosts):
            defaults = self._extraction.local
        else:
            defaults = self._extraction.public
        return ExtractionOptions(
            max_depth=defaults.max_depth,
            text_min_length=defaults.text_min_length,
            max_elements=defaults.max_elements,
        )

    async def _snapshot(
        self,
        session: Session,
        response: BatchResponse,
        element_options: ExtractionOptions | None,
    ) -> None:
        try:
            response.url = self._driver.current_url(session.page)
        except Exception as exc:
            logger.warning(f"Could not read URL for session {session.id}: {exc}")
            return

        try:
            response.title = await self._driver.current_title(session.page)
        except Exception as exc:
            logger.debug(f"Could not read title for session {session.id}: {exc}")
            response.title = None

        if not is_scrapable_url(response.url):
            logger.debug(f"Skipping extraction for {response.url}")
            return

        options = element_options or self.default_options(response.url)
        try:
            response.elements = await extract_page(self._driver, session.page, options)
        except SnapshotError as exc:
            logger.warning(f"Session {session.id}: {exc}")
            response.elements = None

    async def _attach_screenshot(
        self, session: Session, results: list[ActionResult]
    ) -> str | None:
        for result in results:
            if result.screenshot:
                return to_data_uri(result.screenshot)

        if session.closed or all(r.success for r in results):
            return None

        # Diagnostic capture after a failure; never fails the batch.
        try:
            data = await self._driver.screenshot(session.page)
        except Exception as exc:
            logger.debug(f"Diagnostic screenshot failed for {session.id}: {exc}")
            return None
        return to_data_uri(base64.b64encode(data).decode("ascii"))
