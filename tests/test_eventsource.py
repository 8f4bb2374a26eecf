from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import pytest

from pyblaq._eventsource import BlaqEventSource, StreamEndpoint
from pyblaq.models import EventKind, RawEvent


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@dataclass
class _Message:
    type: str
    data: str


class _Stream:
    """One scripted connection: an optional connect error, then messages, then silence."""

    def __init__(self, messages: list[_Message] | None = None, error: Exception | None = None) -> None:
        self._messages = messages or []
        self._error = error

    async def _iter(self) -> AsyncIterator[_Message]:
        for message in self._messages:
            yield message
        # Keep the stream open like a live controller.
        await asyncio.Event().wait()

    async def __aenter__(self) -> AsyncIterator[_Message]:
        if self._error is not None:
            raise self._error
        return self._iter()

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _StreamFactory:
    """Hands out scripted streams, then streams that stay silent."""

    def __init__(self, *streams: _Stream) -> None:
        self._streams = list(streams)
        self.urls: list[str] = []

    def __call__(self, endpoint: StreamEndpoint) -> _Stream:
        self.urls.append(endpoint.url)
        if self._streams:
            return self._streams.pop(0)
        return _Stream()


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _source(factory: _StreamFactory, events: list[RawEvent], clock: _Clock | None = None) -> BlaqEventSource:
    return BlaqEventSource(
        StreamEndpoint(host="gdo.local", port=80),
        session=None,  # type: ignore[arg-type]
        on_log=events.append,
        on_state=events.append,
        on_ping=events.append,
        idle_timeout=60.0,
        watchdog_interval=3600.0,
        stream_factory=factory,
        clock=clock or _Clock(),
    )


def test_endpoint_normalizes_protocol_and_path() -> None:
    endpoint = StreamEndpoint(host="10.0.0.5", port=8080, protocol="https://", path="/events")
    assert endpoint.protocol == "https"
    assert endpoint.path == "events"
    assert endpoint.url == "https://10.0.0.5:8080/events"
    assert endpoint.with_host_port("10.0.0.6", 80).url == "https://10.0.0.6:80/events"


@pytest.mark.asyncio
async def test_events_are_dispatched_in_arrival_order() -> None:
    messages = [
        _Message("ping", '{"title": "GDO blaQ 6084d8"}'),
        _Message("state", '{"id": "binary_sensor-synced", "value": true}'),
        _Message("message", "unnamed"),
        _Message("log", "Door state: OPEN"),
    ]
    factory = _StreamFactory(_Stream(messages))
    events: list[RawEvent] = []
    source = _source(factory, events)

    source.open()
    await _settle()

    assert [event.kind for event in events] == [EventKind.PING, EventKind.STATE, EventKind.LOG]
    assert events[2].payload == "Door state: OPEN"
    assert factory.urls == ["http://gdo.local:80/events"]
    assert source.is_open
    await source.aclose()
    assert not source.is_open


@pytest.mark.asyncio
async def test_connect_error_reopens_without_backoff() -> None:
    # aiohttp-sse-client2 raises ConnectionError for a non-200 status.
    factory = _StreamFactory(_Stream(error=ConnectionError("fetch http://gdo.local:80/events failed: 503")))
    source = _source(factory, [])

    source.open()
    await _settle()

    assert source.reconnect_count == 1
    assert len(factory.urls) == 2
    await source.aclose()


@pytest.mark.asyncio
async def test_timeout_while_connecting_reopens() -> None:
    factory = _StreamFactory(_Stream(error=asyncio.TimeoutError()))
    source = _source(factory, [])

    source.open()
    await _settle()

    assert source.reconnect_count == 1
    assert source.is_open
    await source.aclose()


@pytest.mark.asyncio
async def test_idle_watchdog_cycles_once_per_breach() -> None:
    clock = _Clock()
    factory = _StreamFactory()
    source = _source(factory, [], clock)
    source.open()
    await _settle()

    # Nothing received yet: the idle clock has not started.
    clock.now += 1000
    assert source._check_idle() is False

    source._dispatch("state", '{"id": "binary_sensor-synced", "value": true}')
    clock.now += 30
    assert source._check_idle() is False

    clock.now += 31
    assert source._check_idle() is True
    assert source.reconnect_count == 1
    # The restart cleared the idle clock; no second cycle until a new event arrives.
    clock.now += 120
    assert source._check_idle() is False
    assert source.reconnect_count == 1

    await _settle()
    assert len(factory.urls) == 2
    await source.aclose()


@pytest.mark.asyncio
async def test_update_endpoint_reconnects_only_on_change() -> None:
    factory = _StreamFactory()
    source = _source(factory, [])
    source.open()
    await _settle()

    assert source.update_endpoint("gdo.local", 80) is False
    assert source.reconnect_count == 0

    assert source.update_endpoint("10.0.0.7", 8080) is True
    await _settle()
    assert source.endpoint.url == "http://10.0.0.7:8080/events"
    assert factory.urls[-1] == "http://10.0.0.7:8080/events"
    assert source.reconnect_count == 1
    await source.aclose()


def test_update_endpoint_while_closed_does_not_open() -> None:
    source = _source(_StreamFactory(), [])
    assert source.update_endpoint("10.0.0.7", 80) is True
    assert not source.is_open


def test_close_is_idempotent_before_open() -> None:
    source = _source(_StreamFactory(), [])
    source.close()
    source.close()
    assert not source.is_open
    assert source.last_event_at is None


def test_handler_errors_do_not_escape_dispatch() -> None:
    def boom(event: RawEvent) -> None:
        raise RuntimeError("handler failed")

    clock = _Clock()
    source = BlaqEventSource(
        StreamEndpoint(host="gdo.local"),
        session=None,  # type: ignore[arg-type]
        on_log=boom,
        stream_factory=_StreamFactory(),
        clock=clock,
    )

    source._dispatch("log", "hello")
    assert source.last_event_at == clock.now


def test_unnamed_events_are_ignored() -> None:
    events: list[RawEvent] = []
    source = _source(_StreamFactory(), events)
    source._dispatch("message", "hello")
    assert events == []
    assert source.last_event_at is None


def test_missing_handler_falls_back_to_warning(caplog: pytest.LogCaptureFixture) -> None:
    source = BlaqEventSource(
        StreamEndpoint(host="gdo.local"),
        session=None,  # type: ignore[arg-type]
        stream_factory=_StreamFactory(),
    )
    with caplog.at_level("WARNING"):
        source._dispatch("ping", "")
    assert "No ping handler registered" in caplog.text
