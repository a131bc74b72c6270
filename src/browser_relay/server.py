"""Asyncio daemon for browser-relay.

Owns one ``BrowserService`` and serves it over a Unix domain socket.  Each
connection carries a single line-delimited JSON request of the form
``{"cmd": "...", "args": {...}}`` and gets a single JSON line back.  Every
reply has an ``ok`` flag; failed commands also carry ``error``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import traceback
from pathlib import Path
from typing import Any

from browser_relay.config import RelayConfig, load_config
from browser_relay.driver import BrowserDriver
from browser_relay.exceptions import RelayError
from browser_relay.patchright_driver import PatchrightDriver
from browser_relay.service import BrowserService

logger = logging.getLogger("browser_relay.server")


class RelayServer:
    """Maps socket commands onto ``BrowserService`` calls."""

    def __init__(self, service: BrowserService) -> None:
        self.service = service
        self.stopping = asyncio.Event()

    # -- Command dispatch ----------------------------------------------------

    async def handle_command(self, cmd: str, args: dict[str, Any]) -> dict[str, Any]:
        """Dispatch *cmd* to the appropriate ``cmd_*`` handler."""
        method_name = f"cmd_{cmd.replace('-', '_')}"
        handler = getattr(self, method_name, None)
        if handler is None:
            return {"ok": False, "error": f"Unknown command: {cmd}"}
        try:
            return await handler(**args)
        except RelayError as exc:
            return {"ok": False, "error": str(exc)}
        except Exception as exc:
            return {"ok": False, "error": f"{exc}\n{traceback.format_exc()}"}

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        cmd = ""
        try:
            data = await reader.readline()
            if not data:
                return

            request = json.loads(data.decode())
            cmd = request.get("cmd", "")
            args = request.get("args") or {}
            logger.debug(f"Received command: {cmd}")

            result = await self.handle_command(cmd, args)
            if not result.get("ok", False):
                logger.warning(f"Command {cmd!r} failed: {result.get('error')}")
            else:
                logger.debug(f"Command {cmd!r} succeeded")

            writer.write(json.dumps(result, default=str).encode() + b"\n")
            await writer.drain()
        except json.JSONDecodeError as exc:
            writer.write(
                json.dumps({"ok": False, "error": f"Invalid JSON: {exc}"}).encode()
                + b"\n"
            )
            await writer.drain()
        except Exception:
            logger.exception("Unhandled error in handle_client")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                logger.debug("Client went away before close")

    # -----------------------------------------------------------------------
    # Command handlers
    # -----------------------------------------------------------------------

    async def cmd_actions(self, **payload: Any) -> dict[str, Any]:
        response = await self.service.run_actions(payload)
        return {"ok": True, **response.to_wire()}

    async def cmd_extract(
        self,
        sessionId: str | None = None,
        elementOptions: dict[str, Any] | None = None,
        recommend: bool = False,
    ) -> dict[str, Any]:
        result = await self.service.extract(sessionId, elementOptions, recommend)
        return {"ok": True, **result}

    async def cmd_screenshot(
        self, sessionId: str | None = None, selector: str | None = None
    ) -> dict[str, Any]:
        result = await self.service.screenshot(sessionId, selector)
        return {"ok": True, **result}

    async def cmd_sessions(self) -> dict[str, Any]:
        sessions = await self.service.list_sessions()
        return {
            "ok": True,
            "sessions": [s.model_dump(by_alias=True) for s in sessions],
        }

    async def cmd_logs(self, sessionId: str | None = None) -> dict[str, Any]:
        return {"ok": True, **self.service.session_logs(sessionId)}

    async def cmd_close_session(self, sessionId: str) -> dict[str, Any]:
        closed = await self.service.close_session(sessionId)
        return {"ok": True, "sessionId": sessionId, "closed": closed}

    async def cmd_health(self) -> dict[str, Any]:
        return {"ok": True, **self.service.health()}

    async def cmd_shutdown(self) -> dict[str, Any]:
        logger.info("Shutdown command received")
        self.stopping.set()
        return {"ok": True}


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


async def run_server(config: RelayConfig, driver: BrowserDriver | None = None) -> None:
    """Start the service and serve it until SIGTERM, SIGINT or ``shutdown``."""
    service = BrowserService(driver or PatchrightDriver(config.browser), config)
    relay = RelayServer(service)

    socket_path = Path(config.server.socket_path)
    # Remove stale socket
    if socket_path.exists():
        socket_path.unlink()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, relay.stopping.set)

    await service.start()
    try:
        server = await asyncio.start_unix_server(
            relay.handle_client, path=str(socket_path)
        )
        logger.info(f"Server listening on {socket_path}")
        async with server:
            await relay.stopping.wait()
    finally:
        logger.info("Shutting down: closing sessions and browser")
        await service.close()
        if socket_path.exists():
            socket_path.unlink()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def _setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure the root logger for the daemon process."""
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="browser-relay",
        description="Serve remote headless-browser sessions over a Unix socket.",
    )
    parser.add_argument("--config", help="Path to a JSON configuration file")
    parser.add_argument("--socket", help="Unix socket path to listen on")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Root log level (default: INFO)",
    )
    parser.add_argument("--log-file", help="Append logs to this file instead of stderr")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    _setup_logging(args.log_level, args.log_file)

    config = load_config(args.config)
    if args.socket:
        config.server.socket_path = args.socket

    logger.info("browser-relay starting")
    try:
        asyncio.run(run_server(config))
    except Exception:
        logger.exception("Daemon crashed")
        raise


if __name__ == "__main__":
    main()
