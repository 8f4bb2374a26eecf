"""Auto-reconnecting server-sent event client for the controller's event stream.

Owns:
- at most one streaming HTTP connection at a time
- dispatching ``log`` / ``state`` / ``ping`` events to callbacks in arrival order
- an idle watchdog that forces a reconnect when the stream goes quiet

Framing of ``text/event-stream`` is left to ``aiohttp-sse-client2``.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager
from datetime import timedelta
from typing import Any

import aiohttp
from aiohttp_sse_client2 import client as sse_client

from pyblaq._constants import DEFAULT_IDLE_TIMEOUT_S, WATCHDOG_INTERVAL_S
from pyblaq.models.events import EventKind, RawEvent

_logger = logging.getLogger(__name__)

EventCallback = Callable[[RawEvent], None]
# Yields message objects exposing ``type`` and ``data``.
StreamFactory = Callable[["StreamEndpoint"], AbstractAsyncContextManager[AsyncIterator[Any]]]


@dataclasses.dataclass(frozen=True)
class StreamEndpoint:
    """Where the event stream lives.

    ``protocol`` tolerates a trailing ``://`` and ``path`` a leading ``/``.
    """

    host: str
    port: int = 80
    protocol: str = "http"
    path: str = "events"

    def __post_init__(self) -> None:
        object.__setattr__(self, "protocol", self.protocol.split("://", 1)[0] or "http")
        object.__setattr__(self, "path", self.path.lstrip("/"))

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}/{self.path}"

    def with_host_port(self, host: str, port: int) -> StreamEndpoint:
        return dataclasses.replace(self, host=host, port=port)


class BlaqEventSource:
    """Event stream client that reconnects on errors and on idle streams.

    Every transport fault closes the connection and reopens it; there is
    no backoff. The watchdog checks once per ``watchdog_interval`` whether
    the last event is older than ``idle_timeout`` and, if so, cycles the
    connection once. The idle clock restarts only when a new event arrives.
    """

    def __init__(
        self,
        endpoint: StreamEndpoint,
        *,
        session: aiohttp.ClientSession,
        on_log: EventCallback | None = None,
        on_state: EventCallback | None = None,
        on_ping: EventCallback | None = None,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT_S,
        watchdog_interval: float = WATCHDOG_INTERVAL_S,
        reconnect_delay: float = 0.0,
        auth: aiohttp.BasicAuth | None = None,
        stream_factory: StreamFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._session = session
        self._logger = logger or _logger
        self._handlers: dict[str, EventCallback] = {
            EventKind.LOG: on_log or self._unhandled,
            EventKind.STATE: on_state or self._unhandled,
            EventKind.PING: on_ping or self._unhandled,
        }
        self._idle_timeout = idle_timeout
        self._watchdog_interval = watchdog_interval
        self._reconnect_delay = reconnect_delay
        self._auth = auth
        self._stream_factory = stream_factory or self._sse_stream
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._watchdog: asyncio.Task[None] | None = None
        self._last_event_at: float | None = None
        self._reconnect_count = 0

    @property
    def endpoint(self) -> StreamEndpoint:
        return self._endpoint

    @property
    def is_open(self) -> bool:
        """Whether a connection task is active."""
        return self._task is not None and not self._task.done()

    @property
    def last_event_at(self) -> float | None:
        return self._last_event_at

    @property
    def reconnect_count(self) -> int:
        """Number of close+reopen cycles caused by errors or idleness."""
        return self._reconnect_count

    def open(self) -> None:
        """Start streaming. Must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        if self._task is None or self._task.done():
            self._logger.debug("Opening event stream %s", self._endpoint.url)
            self._task = loop.create_task(self._run(), name=f"pyblaq-events-{self._endpoint.host}")
        if self._watchdog is None or self._watchdog.done():
            self._watchdog = loop.create_task(self._watch_idle(), name=f"pyblaq-idle-{self._endpoint.host}")

    def close(self) -> None:
        """Stop streaming. Safe to call repeatedly or before :meth:`open`."""
        task, watchdog = self._task, self._watchdog
        self._task = None
        self._watchdog = None
        self._last_event_at = None
        if watchdog is not None:
            watchdog.cancel()
        if task is not None:
            self._logger.debug("Closing event stream %s", self._endpoint.url)
            task.cancel()

    async def aclose(self) -> None:
        """Close and wait for the connection to be torn down."""
        tasks = [t for t in (self._task, self._watchdog) if t is not None]
        self.close()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def update_endpoint(self, host: str, port: int) -> bool:
        """Point the client at a new address.

        Reconnects only when host or port actually changed. Returns whether
        a reconnect happened.
        """
        if host == self._endpoint.host and port == self._endpoint.port:
            return False
        self._logger.info(
            "Event stream moving from %s:%s to %s:%s",
            self._endpoint.host,
            self._endpoint.port,
            host,
            port,
        )
        was_open = self._task is not None
        self._endpoint = self._endpoint.with_host_port(host, port)
        if was_open:
            self._restart_connection()
        return True

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            try:
                await self._consume()
                self._logger.warning("Event stream %s ended by server; reopening", self._endpoint.url)
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, TimeoutError, OSError) as exc:
                self._logger.error("Event stream %s got error: %s", self._endpoint.url, exc)
                self._logger.debug("Event stream error details", exc_info=True)
            self._reconnect_count += 1
            self._last_event_at = None
            if self._reconnect_delay > 0:
                await asyncio.sleep(self._reconnect_delay)

    async def _consume(self) -> None:
        async with self._stream_factory(self._endpoint) as stream:
            self._logger.debug("Event stream %s connected", self._endpoint.url)
            async for message in stream:
                self._dispatch(message.type, message.data)

    def _sse_stream(self, endpoint: StreamEndpoint) -> sse_client.EventSource:
        # A failed connect surfaces here instead of being retried inside the client.
        return sse_client.EventSource(
            endpoint.url,
            session=self._session,
            reconnection_time=timedelta(seconds=self._reconnect_delay),
            max_connect_retry=0,
            auth=self._auth,
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=10),
        )

    def _dispatch(self, event: str, data: str) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            self._logger.debug("Ignoring %r event from stream", event)
            return
        self._last_event_at = self._clock()
        try:
            handler(RawEvent(kind=EventKind(event), payload=data))
        except Exception:
            self._logger.exception("Event handler for %s raised", event)

    def _unhandled(self, event: RawEvent) -> None:
        self._logger.warning("No %s handler registered; got %r", event.kind, event.payload)

    # ------------------------------------------------------------------
    # Idle watchdog
    # ------------------------------------------------------------------

    def _restart_connection(self) -> None:
        task = self._task
        self._task = None
        self._last_event_at = None
        if task is not None:
            task.cancel()
        self._reconnect_count += 1
        self.open()

    def _check_idle(self) -> bool:
        """Cycle the connection if it has been quiet too long."""
        if self._task is None or self._last_event_at is None:
            return False
        idle_for = self._clock() - self._last_event_at
        if idle_for <= self._idle_timeout:
            return False
        self._logger.warning(
            "Event stream %s idle for %.0fs; reconnecting",
            self._endpoint.url,
            idle_for,
        )
        self._restart_connection()
        return True

    async def _watch_idle(self) -> None:
        while True:
            await asyncio.sleep(self._watchdog_interval)
            self._check_idle()
