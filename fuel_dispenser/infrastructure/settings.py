"""
Application settings.

Provides typed, immutable configuration for peripheral endpoints,
channel behaviour, protocol timeouts, controller timing, logging and
the optional Redis status mirror.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional


# =============================================================================
# Peripheral Endpoints
# =============================================================================


@dataclass(frozen=True)
class EndpointSettings:
    """Address of one peripheral and the role the controller plays on it."""

    host: str = "localhost"
    port: int = 0
    role: str = "client"


@dataclass(frozen=True)
class DeviceEndpoints:
    """Pre-shared host:port pairs of every peripheral."""

    pump: EndpointSettings = field(default_factory=lambda: EndpointSettings(port=1234))
    card_reader: EndpointSettings = field(default_factory=lambda: EndpointSettings(port=1235))
    flow_meter: EndpointSettings = field(default_factory=lambda: EndpointSettings(port=1236))
    screen: EndpointSettings = field(default_factory=lambda: EndpointSettings(port=1237))
    bank: EndpointSettings = field(default_factory=lambda: EndpointSettings(port=1238))
    hose: EndpointSettings = field(default_factory=lambda: EndpointSettings(port=1239))
    station: EndpointSettings = field(default_factory=lambda: EndpointSettings(port=1240))


# =============================================================================
# Channel / Protocol Timing
# =============================================================================


@dataclass(frozen=True)
class ChannelSettings:
    """Reconnecting channel behaviour."""

    reconnect_delay: float = 3.0
    connect_timeout: float = 5.0
    encoding: str = "utf-8"


@dataclass(frozen=True)
class TimeoutSettings:
    """Per-manager response budgets, in seconds."""

    bank_response: float = 5.0
    station_response: float = 5.0
    input_poll: float = 0.05


@dataclass(frozen=True)
class ControllerSettings:
    """Fueling state machine timing, in seconds."""

    tick_interval: float = 0.1
    selection_timeout: float = 15
    nozzle_timeout: float = 15
    pause_timeout: float = 15
    no_authorization_delay: float = 5
    completion_delay: float = 10


# =============================================================================
# Logging / Redis
# =============================================================================


@dataclass(frozen=True)
class LoggingSettings:
    """Application logger configuration."""

    app: str = "fuel_dispenser"
    log_file: Optional[str] = None
    loki_url: Optional[str] = None
    level: int = logging.DEBUG


@dataclass(frozen=True)
class RedisSettings:
    """Redis connection settings for the pump-status mirror."""

    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    decode_responses: bool = True
    key_prefix: str = "fuel_dispenser"


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """
    Main application settings.

    Aggregates all configuration sections.
    """

    devices: DeviceEndpoints = field(default_factory=DeviceEndpoints)
    channel: ChannelSettings = field(default_factory=ChannelSettings)
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)
    controller: ControllerSettings = field(default_factory=ControllerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    redis: RedisSettings = field(default_factory=RedisSettings)


# =============================================================================
# Settings Singleton
# =============================================================================


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

