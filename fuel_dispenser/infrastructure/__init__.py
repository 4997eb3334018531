"""
Infrastructure layer - External dependencies and implementations.

Contains:
- Configuration
- Repository implementations (Redis)
"""

from .settings import (
    Settings,
    get_settings,
)
from .redis_repository import (
    RedisStateRepository,
    PumpStatus,
    PumpStatusRepository,
)


__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Repositories
    "RedisStateRepository",
    "PumpStatus",
    "PumpStatusRepository",
]
