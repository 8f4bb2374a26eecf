"""Bootstrap coordinator for one controller, and a registry of them.

A :class:`BlaqHub` listens to the event stream before it knows which
device it is talking to. Every event is buffered until both the friendly
name (ping ``title``) and the MAC address (``text_sensor-device_id``)
have been seen. At that point the configured entities are created, the
buffer is replayed into them in arrival order and dropped, and from then
on events go straight to the entities. Resolution happens once per hub;
reconnects do not repeat it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

import aiohttp

from pyblaq._constants import DEVICE_ID_ID
from pyblaq._eventsource import BlaqEventSource, EventCallback, StreamEndpoint
from pyblaq._redact import redact_for_log
from pyblaq._transport import CommandTransport, HttpCommandTransport
from pyblaq.config import BlaqConfig
from pyblaq.entities import (
    Entity,
    GarageDoor,
    GarageLight,
    GarageLock,
    LearnMode,
    MotionSensor,
    ObstructionSensor,
    PreCloseWarning,
)
from pyblaq.exceptions import BlaqError, BlaqPayloadError
from pyblaq.ingestion.logs import (
    DoorLogInterpreter,
    interpret_learn_log,
    interpret_light_log,
    interpret_lock_log,
    interpret_motion_log,
    interpret_obstruction_log,
    interpret_pre_close_warning_log,
)
from pyblaq.models.events import EventKind, RawEvent, parse_ping, parse_state_record
from pyblaq.models.identity import DeviceIdentity, format_mac

_logger = logging.getLogger(__name__)


class EventSource(Protocol):
    """What the hub needs from a stream client."""

    def open(self) -> None: ...

    def close(self) -> None: ...

    async def aclose(self) -> None: ...


EntitiesReady = Callable[["BlaqHub", list[Entity]], None]
EventSourceFactory = Callable[[StreamEndpoint, EventCallback], EventSource]


class BlaqHub:
    """Coordinator for a single blaQ controller.

    Usage::

        async with BlaqHub(config, on_entities_ready=setup) as hub:
            ...
    """

    def __init__(
        self,
        config: BlaqConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: CommandTransport | None = None,
        on_entities_ready: EntitiesReady | None = None,
        event_source_factory: EventSourceFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or _logger
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._on_entities_ready = on_entities_ready
        self._event_source_factory = event_source_factory
        self._endpoint = config.stream_endpoint()
        self._source: EventSource | None = None
        self._identity = DeviceIdentity()
        self._resolved = False
        self._pending: list[RawEvent] = []
        self._entities: list[Entity] = []
        self._auth: aiohttp.BasicAuth | None = None
        if config.username and config.password:
            self._auth = aiohttp.BasicAuth(config.username, config.password)
        self._logger.debug("Hub configured: %s", redact_for_log(_config_for_log(config)))

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BlaqHub:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def connect(self) -> None:
        """Create whatever is missing (session, transport) and start streaming."""
        needs_session = self._transport is None or self._event_source_factory is None
        if needs_session and self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        if self._transport is None:
            assert self._http_session is not None  # noqa: S101
            self._transport = HttpCommandTransport(self._http_session, auth=self._auth)
        self.start()

    async def aclose(self) -> None:
        """Stop streaming and release the session if the hub created it."""
        await self.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def start(self) -> None:
        """Open the event stream. Must be called from a running event loop."""
        if self._source is None:
            self._source = self._make_source(self._endpoint)
        self._source.open()

    async def stop(self) -> None:
        source, self._source = self._source, None
        if source is not None:
            await source.aclose()
        for entity in self._entities:
            if isinstance(entity, GarageDoor):
                entity.cancel_timers()

    def _make_source(self, endpoint: StreamEndpoint) -> EventSource:
        if self._event_source_factory is not None:
            return self._event_source_factory(endpoint, self.handle_event)
        if self._http_session is None:
            raise BlaqError("Hub not connected. Use 'async with BlaqHub(...) as hub:'")
        return BlaqEventSource(
            endpoint,
            session=self._http_session,
            on_log=self.handle_event,
            on_state=self.handle_event,
            on_ping=self.handle_event,
            idle_timeout=self._config.idle_timeout,
            watchdog_interval=self._config.watchdog_interval,
            reconnect_delay=self._config.reconnect_delay,
            auth=self._auth,
            logger=self._logger,
        )

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def config(self) -> BlaqConfig:
        return self._config

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def entities(self) -> list[Entity]:
        return list(self._entities)

    @property
    def pending_count(self) -> int:
        """Events buffered while identity is unresolved."""
        return len(self._pending)

    @property
    def endpoint(self) -> StreamEndpoint:
        return self._endpoint

    @property
    def api_base_url(self) -> str:
        return f"{self._endpoint.protocol}://{self._endpoint.host}:{self._endpoint.port}"

    def get_entity(self, name: str) -> Entity | None:
        for entity in self._entities:
            if entity.name == name:
                return entity
        return None

    # ------------------------------------------------------------------
    # Event routing
    # ------------------------------------------------------------------

    def handle_event(self, event: RawEvent) -> None:
        """Entry point for every event from the stream, in arrival order."""
        if self._resolved:
            self._forward(event)
            return
        self._pending.append(event)
        self._extract_identity(event)
        if self._identity.is_complete:
            self._resolve()

    def _forward(self, event: RawEvent) -> None:
        for entity in self._entities:
            entity.handle_event(event)

    def _extract_identity(self, event: RawEvent) -> None:
        if event.kind is EventKind.PING:
            try:
                ping = parse_ping(event.payload)
            except BlaqPayloadError as exc:
                self._logger.error("Cannot deserialize ping event %r: %s", event.payload, exc)
                return
            if ping is not None and ping.title:
                self._update_identity(friendly_name=ping.title)
        elif event.kind is EventKind.STATE:
            try:
                record = parse_state_record(event.payload)
            except BlaqPayloadError as exc:
                self._logger.error("Cannot deserialize state event %r: %s", event.payload, exc)
                return
            if record.id != DEVICE_ID_ID:
                return
            raw = record.value if record.value is not None else record.state
            mac = format_mac(str(raw)) if raw is not None else None
            if mac:
                self._update_identity(device_mac=mac)
            else:
                self._logger.warning("Device id record without a usable MAC: %r", record.raw)

    def _update_identity(self, **changes: str) -> None:
        updated = self._identity.model_copy(update=changes)
        if updated != self._identity:
            self._logger.debug("Identity update: %s", changes)
            self._identity = updated

    def _resolve(self) -> None:
        self._entities = self._materialize()
        self._resolved = True
        self._logger.info(
            "Resolved %s (%s); created %d entities, replaying %d buffered event(s)",
            self._identity.friendly_name,
            self._identity.device_mac,
            len(self._entities),
            len(self._pending),
        )
        pending, self._pending = self._pending, []
        for event in pending:
            self._forward(event)
        if self._on_entities_ready is not None:
            self._on_entities_ready(self, list(self._entities))

    def _materialize(self) -> list[Entity]:
        if self._transport is None:
            raise BlaqError("Hub has no command transport. Use 'async with BlaqHub(...) as hub:'")
        toggles = self._config.entities
        heuristics = self._config.log_heuristics
        common: dict[str, Any] = {
            "api_base_url": self.api_base_url,
            "transport": self._transport,
            "logger": self._logger,
        }
        entities: list[Entity] = [
            GarageDoor(
                log_interpreter=DoorLogInterpreter(self._config.log_position_scale) if heuristics else None,
                pre_close_grace=self._config.pre_close_grace,
                **common,
            )
        ]
        optional = (
            (toggles.light, GarageLight, interpret_light_log),
            (toggles.lock, GarageLock, interpret_lock_log),
            (toggles.motion, MotionSensor, interpret_motion_log),
            (toggles.pre_close_warning, PreCloseWarning, interpret_pre_close_warning_log),
            (toggles.learn_mode, LearnMode, interpret_learn_log),
            (toggles.obstruction, ObstructionSensor, interpret_obstruction_log),
        )
        for enabled, entity_cls, interpreter in optional:
            if enabled:
                entities.append(entity_cls(log_interpreter=interpreter if heuristics else None, **common))
        return entities

    # ------------------------------------------------------------------
    # Reconfiguration
    # ------------------------------------------------------------------

    def update_host_port(self, host: str, port: int) -> bool:
        """Point the hub at a new address. Returns whether anything changed.

        The stream client is recreated for the new endpoint and every
        entity gets the new API base URL. Identity is not re-resolved.
        """
        if host == self._endpoint.host and port == self._endpoint.port:
            return False
        self._logger.info(
            "Controller moved from %s:%s to %s:%s", self._endpoint.host, self._endpoint.port, host, port
        )
        self._endpoint = self._endpoint.with_host_port(host, port)
        if self._source is not None:
            self._source.close()
            self._source = self._make_source(self._endpoint)
            self._source.open()
        for entity in self._entities:
            entity.set_api_base_url(self.api_base_url)
        return True

    def reset_sync_state(self) -> None:
        """Make every entity wait for the next sync signal."""
        for entity in self._entities:
            entity.reset_sync_state()

    def snapshot(self) -> dict[str, Any]:
        return {
            "friendly_name": self._identity.friendly_name,
            "device_mac": self._identity.device_mac,
            "resolved": self._resolved,
            "pending": len(self._pending),
            "api_base_url": self.api_base_url,
            "entities": {entity.name: entity.as_dict() for entity in self._entities},
        }


def _config_for_log(config: BlaqConfig) -> dict[str, Any]:
    return {
        "host": config.host,
        "port": config.port,
        "protocol": config.protocol,
        "mac": config.mac,
        "username": config.username,
        "password": config.password,
    }


HubFactory = Callable[[BlaqConfig], BlaqHub]


class HubRegistry:
    """Hubs keyed by device, so rediscovery updates instead of duplicating.

    The key is the formatted MAC when the configuration carries one and
    the host otherwise.
    """

    def __init__(self, *, hub_factory: HubFactory | None = None) -> None:
        self._hub_factory = hub_factory or BlaqHub
        self._hubs: dict[str, BlaqHub] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._hubs

    def __len__(self) -> int:
        return len(self._hubs)

    def get(self, key: str) -> BlaqHub | None:
        return self._hubs.get(key)

    def get_device_key(self, config: BlaqConfig) -> str:
        mac = format_mac(config.mac)
        if mac:
            return mac
        for key, hub in self._hubs.items():
            if hub.endpoint.host == config.host:
                return key
        return config.host

    async def register(self, config: BlaqConfig) -> BlaqHub:
        """Return the hub for *config*'s device, creating and connecting it if new."""
        key = self.get_device_key(config)
        hub = self._hubs.get(key)
        if hub is not None:
            _logger.debug("Device %s already registered; refreshing its address", key)
            hub.update_host_port(config.host, config.port)
            return hub
        hub = self._hub_factory(config)
        self._hubs[key] = hub
        _logger.info("Registered device %s", key)
        await hub.connect()
        return hub

    async def aclose(self) -> None:
        hubs = list(self._hubs.values())
        self._hubs.clear()
        for hub in hubs:
            await hub.aclose()
