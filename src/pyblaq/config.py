"""Hub configuration for pyblaq."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyblaq._constants import DEFAULT_IDLE_TIMEOUT_S, PRE_CLOSE_GRACE_S, WATCHDOG_INTERVAL_S
from pyblaq._eventsource import StreamEndpoint
from pyblaq.exceptions import BlaqConfigError
from pyblaq.ingestion.logs import PositionScale


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class EntityToggles:
    """Which optional entities are materialised once identity resolves.

    The garage door itself is always created.
    """

    light: bool = True
    lock: bool = True
    motion: bool = True
    pre_close_warning: bool = True
    learn_mode: bool = True
    obstruction: bool = True


@dataclasses.dataclass(frozen=True)
class BlaqConfig:
    """Hub configuration.

    Parameters
    ----------
    host : str
        Controller host name or IP address.
    port : int
        Controller web server port.
    protocol : str
        ``"http"`` or ``"https"``; a trailing ``://`` is tolerated.
    events_path : str
        Path of the server-sent event stream.
    mac : str or None
        MAC address if already known (manual config or discovery). Only used
        as a registry key; identity is always resolved from the stream.
    display_name : str or None
        Human-readable name for the device.
    username, password : str or None
        Web API credentials, if the controller has them enabled.
    idle_timeout : float
        Seconds without any stream event before forcing a reconnect.
    watchdog_interval : float
        Cadence of the idle check, in seconds.
    reconnect_delay : float
        Pause between closing a failed stream and reopening it.
    pre_close_grace : float
        Extra seconds the pre-close warning stays active after the
        duration announced by the controller.
    log_heuristics : bool
        Interpret free-form log lines as a secondary state signal.
    log_position_scale : PositionScale
        Scale the door keeps log-derived positions on.
    entities : EntityToggles
        Optional entity switches.
    """

    host: str
    port: int = 80
    protocol: str = "http"
    events_path: str = "events"
    mac: str | None = None
    display_name: str | None = None
    username: str | None = None
    password: str | None = None
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT_S
    watchdog_interval: float = WATCHDOG_INTERVAL_S
    reconnect_delay: float = 0.0
    pre_close_grace: float = PRE_CLOSE_GRACE_S
    log_heuristics: bool = True
    log_position_scale: PositionScale = PositionScale.PERCENT
    entities: EntityToggles = dataclasses.field(default_factory=EntityToggles)

    def __post_init__(self) -> None:
        if not self.host or not self.host.strip():
            raise BlaqConfigError("host must be non-empty")
        if self.port <= 0:
            raise BlaqConfigError(f"port must be positive, got {self.port}")
        if self.idle_timeout <= 0:
            raise BlaqConfigError(f"idle_timeout must be positive, got {self.idle_timeout}")
        if self.watchdog_interval <= 0:
            raise BlaqConfigError(f"watchdog_interval must be positive, got {self.watchdog_interval}")

    @property
    def api_base_url(self) -> str:
        """Base URL for outbound commands."""
        return f"{self.stream_endpoint().protocol}://{self.host}:{self.port}"

    def stream_endpoint(self) -> StreamEndpoint:
        """Endpoint of the controller's event stream."""
        return StreamEndpoint(
            host=self.host,
            port=self.port,
            protocol=self.protocol,
            path=self.events_path,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> BlaqConfig:
        """Create configuration from environment variables.

        Reads ``BLAQ_HOST`` and optional ``BLAQ_*`` variables. Explicit
        keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        BlaqConfig
            Populated configuration.
        """
        env = os.environ

        toggle_kwargs: dict[str, bool] = {}
        _ENV_TOGGLE_MAP = {
            "BLAQ_ENABLE_LIGHT": "light",
            "BLAQ_ENABLE_LOCK": "lock",
            "BLAQ_ENABLE_MOTION": "motion",
            "BLAQ_ENABLE_PRE_CLOSE_WARNING": "pre_close_warning",
            "BLAQ_ENABLE_LEARN_MODE": "learn_mode",
            "BLAQ_ENABLE_OBSTRUCTION": "obstruction",
        }
        for env_key, field_name in _ENV_TOGGLE_MAP.items():
            val = env.get(env_key)
            if val is not None:
                toggle_kwargs[field_name] = _env_bool(val, True)

        # Allow overriding toggles via a nested dict
        toggle_overrides = overrides.pop("entities", None)
        if isinstance(toggle_overrides, dict):
            toggle_kwargs.update(toggle_overrides)
        elif isinstance(toggle_overrides, EntityToggles):
            toggle_kwargs = dataclasses.asdict(toggle_overrides)

        entities = EntityToggles(**toggle_kwargs) if toggle_kwargs else EntityToggles()

        _ENV_CONFIG_MAP = {
            "BLAQ_HOST": "host",
            "BLAQ_PROTOCOL": "protocol",
            "BLAQ_EVENTS_PATH": "events_path",
            "BLAQ_MAC": "mac",
            "BLAQ_DISPLAY_NAME": "display_name",
            "BLAQ_USERNAME": "username",
            "BLAQ_PASSWORD": "password",
        }
        config_kwargs: dict[str, Any] = {"entities": entities}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        port_env = env.get("BLAQ_PORT")
        if port_env is not None and "port" not in overrides:
            config_kwargs["port"] = int(port_env)

        _ENV_FLOAT_MAP = {
            "BLAQ_IDLE_TIMEOUT": "idle_timeout",
            "BLAQ_RECONNECT_DELAY": "reconnect_delay",
            "BLAQ_PRE_CLOSE_GRACE": "pre_close_grace",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        if "log_heuristics" not in overrides:
            config_kwargs["log_heuristics"] = _env_bool(env.get("BLAQ_LOG_HEURISTICS"), True)

        scale_env = env.get("BLAQ_LOG_POSITION_SCALE")
        if scale_env is not None and "log_position_scale" not in overrides:
            try:
                config_kwargs["log_position_scale"] = PositionScale(scale_env.strip().lower())
            except ValueError as exc:
                raise BlaqConfigError(f"Unknown BLAQ_LOG_POSITION_SCALE: {scale_env!r}") from exc

        config_kwargs.update(overrides)

        if "host" not in config_kwargs:
            raise BlaqConfigError("BLAQ_HOST is not set and no host override was given")

        return cls(**config_kwargs)
