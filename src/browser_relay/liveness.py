"""Process-liveness policy: restart the container under uptime or memory pressure.

The persisted start time lives in a small text file holding a decimal
millisecond timestamp, so a restarted process sees the uptime of the
container rather than its own.  Killing is delegated to a ``LivenessSink``:
when this process is PID 1 it exits non-zero, otherwise it signals PID 1.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import signal
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import psutil

from browser_relay.config import LivenessConfig
from browser_relay.exceptions import LivenessFatal

logger = logging.getLogger(__name__)

_MEMORY_EXIT_DELAY = 0.5


class LivenessState(enum.Enum):
    IDLE = "idle"
    THRESHOLD_REACHED = "threshold_reached"
    KILLED = "killed"


class LivenessSink(Protocol):
    def terminate(self, reason: str) -> None: ...


class ExitSink:
    """Exit this process with status 1.  Used when we are the container's PID 1."""

    def terminate(self, reason: str) -> None:
        logger.critical(f"Exiting for restart: {LivenessFatal(reason)}")
        os._exit(1)


class SignalPrimarySink:
    """Send SIGTERM to PID 1, exiting ourselves if that is not allowed."""

    def terminate(self, reason: str) -> None:
        logger.critical(f"Signalling PID 1 for restart: {LivenessFatal(reason)}")
        try:
            os.kill(1, signal.SIGTERM)
        except OSError as exc:
            logger.error(f"Failed to signal PID 1, exiting instead: {exc}")
            os._exit(1)


def detect_sink() -> LivenessSink:
    if os.getpid() == 1:
        return ExitSink()
    return SignalPrimarySink()


def _now_ms() -> int:
    return int(time.time() * 1000)


class LivenessTimer:
    """Schedules a delayed kill once the persisted uptime passes a threshold.

    ``tick()`` is called after every batch: it cancels any pending kill and
    re-evaluates, so at most one kill is ever scheduled.  Neither
    ``tick()`` nor ``mark_start()`` awaits, which keeps cancel-and-reschedule
    atomic on the event loop.
    """

    def __init__(
        self,
        start_time_file: str | os.PathLike[str],
        threshold_ms: int,
        kill_delay_ms: int = 60_000,
        sink: LivenessSink | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        if threshold_ms <= 0:
            raise ValueError("threshold_ms must be positive")
        self.start_time_file = Path(start_time_file).resolve()
        self.threshold_ms = threshold_ms
        self.kill_delay_ms = kill_delay_ms
        self.state = LivenessState.IDLE
        self._sink = sink or detect_sink()
        self._clock = clock
        self._kill_handle: asyncio.TimerHandle | None = None

    @classmethod
    def from_config(
        cls, config: LivenessConfig, sink: LivenessSink | None = None
    ) -> LivenessTimer:
        return cls(
            start_time_file=config.start_time_file,
            threshold_ms=config.threshold_ms,
            kill_delay_ms=config.kill_delay_ms,
            sink=sink,
        )

    @property
    def pending_kill(self) -> bool:
        return self._kill_handle is not None

    @property
    def started_at(self) -> int | None:
        """The persisted start timestamp, or ``None`` when unreadable."""
        try:
            return int(self.start_time_file.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def mark_start(self) -> None:
        """Persist *now* as the start time and drop any scheduled kill."""
        self._write_start(self._clock())
        self._cancel_kill()
        self.state = LivenessState.IDLE

    def tick(self) -> None:
        """Re-evaluate uptime after activity, scheduling a kill when due."""
        self._cancel_kill()
        elapsed = self._clock() - self._read_or_init_start()
        if elapsed < self.threshold_ms:
            logger.debug(f"Uptime {elapsed}ms < {self.threshold_ms}ms, no action")
            self.state = LivenessState.IDLE
            return

        logger.warning(
            f"Uptime {elapsed}ms >= {self.threshold_ms}ms, "
            f"scheduling restart in {self.kill_delay_ms}ms"
        )
        loop = asyncio.get_running_loop()
        self._kill_handle = loop.call_later(self.kill_delay_ms / 1000, self._kill)
        self.state = LivenessState.THRESHOLD_REACHED

    def cancel(self) -> None:
        self._cancel_kill()
        if self.state is LivenessState.THRESHOLD_REACHED:
            self.state = LivenessState.IDLE

    # -- internals -----------------------------------------------------------

    def _cancel_kill(self) -> None:
        if self._kill_handle is not None:
            self._kill_handle.cancel()
            self._kill_handle = None

    def _read_or_init_start(self) -> int:
        started = self.started_at
        if started is not None:
            return started
        now = self._clock()
        logger.info(f"Initializing start time file {self.start_time_file}")
        self._write_start(now)
        return now

    def _write_start(self, ms: int) -> None:
        # An unwritable file only costs the persisted uptime, never the caller.
        try:
            self.start_time_file.parent.mkdir(parents=True, exist_ok=True)
            self.start_time_file.write_text(str(ms), encoding="utf-8")
        except OSError as exc:
            logger.error(
                f"Could not write start time file {self.start_time_file}: {exc}"
            )

    def _kill(self) -> None:
        self._kill_handle = None
        self.state = LivenessState.KILLED
        self._sink.terminate(f"uptime threshold of {self.threshold_ms}ms reached")


class MemoryMonitor:
    """Periodically samples this process's RSS and restarts when it is too high."""

    def __init__(
        self,
        threshold_mb: int = 300,
        interval: float = 30.0,
        sink: LivenessSink | None = None,
        process: psutil.Process | None = None,
    ) -> None:
        self.threshold_mb = threshold_mb
        self.interval = interval
        self.triggered = False
        self._sink = sink or detect_sink()
        self._process = process or psutil.Process()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls, config: LivenessConfig, sink: LivenessSink | None = None
    ) -> MemoryMonitor:
        return cls(
            threshold_mb=config.memory_threshold_mb,
            interval=config.memory_check_interval,
            sink=sink,
        )

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def check(self) -> float:
        """Sample RSS once.  Returns the usage in MB."""
        usage_mb = self._process.memory_info().rss / (1024 * 1024)
        logger.debug(f"Current memory usage: {usage_mb:.2f} MB")
        if usage_mb > self.threshold_mb and not self.triggered:
            self.triggered = True
            logger.error(
                f"Memory usage {usage_mb:.2f} MB exceeded {self.threshold_mb} MB, "
                "exiting for restart"
            )
            asyncio.get_running_loop().call_later(
                _MEMORY_EXIT_DELAY,
                self._sink.terminate,
                f"memory usage above {self.threshold_mb} MB",
            )
        return usage_mb

    async def _loop(self) -> None:
        while True:
            try:
                self.check()
            except psutil.Error as exc:
                logger.error(f"Error fetching memory usage: {exc}")
            await asyncio.sleep(self.interval)
