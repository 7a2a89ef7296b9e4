"""Periodic push of computed payloads over a persistent connection."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from dockpulse.errors import DockpulseError

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[Any]]
Sender = Callable[[Any], Awaitable[None]]


class StatsStream:
    """
    Pushes a freshly computed payload to one client on a fixed period.

    Sends one frame as soon as it starts, then one per ``poll_rate`` seconds
    until stopped. A stream belongs to exactly one connection; connections
    never share a stream or its results.
    """

    def __init__(
        self,
        produce: Producer,
        send: Sender,
        poll_rate: float = 1.0,
        name: str = "StatsStream",
    ) -> None:
        """
        Initialize the StatsStream.

        Args:
            produce: Coroutine function computing the next payload.
            send: Coroutine function delivering a payload to the client.
            poll_rate: Seconds between frames. Default 1.0s.
            name: Name of the background task, for diagnostics.
        """
        self._produce = produce
        self._send = send
        self._poll_rate = max(0.1, poll_rate)
        self._name = name
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._frames_sent = 0

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the push task is still alive."""
        return self._task is not None and not self._task.done()

    @property
    def frames_sent(self) -> int:
        """Number of frames delivered to the client so far."""
        return self._frames_sent

    def start(self) -> None:
        """Start pushing frames. Must be called from a running event loop."""
        if self.is_running or self._stop_event.is_set():
            return
        self._task = asyncio.create_task(self._poll_loop(), name=self._name)

    def stop(self) -> None:
        """
        Stop the stream.

        Takes effect immediately: no frame is sent after this returns. A
        payload computation already in flight is left to finish and its
        result is discarded.
        """
        self._stop_event.set()

    async def wait_closed(self, timeout: float | None = 5.0) -> None:
        """Wait for the push task to finish after ``stop()``."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s did not finish within %ss", self._name, timeout)

    async def _poll_loop(self) -> None:
        """
        Main push loop, one iteration per frame.

        Ticks fall on a fixed schedule, start + n * poll_rate, so the time
        spent computing a payload does not stretch the period. A tick that
        is already past when a frame finishes is skipped; frames never
        overlap.
        """
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not self._stop_event.is_set():
            try:
                payload = await self._produce()
            except DockpulseError as exc:
                logger.error("%s: error computing payload: %s", self._name, exc)
                payload = {"error": str(exc)}
            except Exception:
                logger.exception("%s: unexpected error computing payload", self._name)
                payload = {"error": "internal error"}

            if self._stop_event.is_set():
                break

            try:
                await self._send(payload)
            except Exception as exc:
                logger.info("%s: send failed, closing stream: %r", self._name, exc)
                self._stop_event.set()
                break
            self._frames_sent += 1

            next_tick += self._poll_rate
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // self._poll_rate) + 1
                next_tick += missed * self._poll_rate

            # Wait for the next tick or until stop is requested
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=next_tick - now)
            except asyncio.TimeoutError:
                pass
