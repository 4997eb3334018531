"""
Redis Repository implementations.

Mirrors the controller's live status and the current price list into
Redis so station-side dashboards can read them. Only a snapshot is
kept; nothing here is a transaction history.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisClientConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisClientTimeoutError

from fuel_dispenser.core.exceptions import RedisConnectionError, RepositoryError
from fuel_dispenser.core.value_objects import FuelGrade


# =============================================================================
# Base Repository
# =============================================================================


class RedisStateRepository:
    """
    Base repository for Redis hash operations.

    Connection and timeout faults are raised as RedisConnectionError,
    any other Redis failure as RepositoryError.
    """

    def __init__(self, redis: Redis, key_prefix: str = "fuel_dispenser") -> None:
        """
        Initialize the repository.

        Args:
            redis: Redis client instance.
            key_prefix: Namespace prepended to every key.
        """
        self._redis = redis
        self._prefix = key_prefix

    def key(self, name: str) -> str:
        """Build a namespaced key."""
        return f"{self._prefix}:{name}"

    async def replace_hash(self, key: str, mapping: Mapping[str, Any]) -> None:
        """Replace a whole hash with ``mapping``."""
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if mapping:
                    pipe.hset(key, mapping=dict(mapping))
                await pipe.execute()
        except (ConnectionError, RedisClientConnectionError, RedisClientTimeoutError) as e:
            raise RedisConnectionError(f"Redis connection error: {e}") from e
        except RedisError as e:
            raise RepositoryError(f"Redis error: {e}") from e

    async def get_hash(self, key: str) -> dict[str, str]:
        """Get all fields of a hash."""
        try:
            return await self._redis.hgetall(key)
        except (ConnectionError, RedisClientConnectionError, RedisClientTimeoutError) as e:
            raise RedisConnectionError(f"Redis connection error: {e}") from e
        except RedisError as e:
            raise RepositoryError(f"Redis error: {e}") from e

    async def close(self) -> None:
        """Close the Redis client."""
        await self._redis.aclose()


# =============================================================================
# Pump Status Repository
# =============================================================================


@dataclass
class PumpStatus:
    """Snapshot of the dispenser as seen by the controller."""

    state: str
    card: Optional[str] = None  # Masked
    grade: Optional[str] = None
    gallons: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")

    def to_mapping(self) -> dict[str, str]:
        """Flatten to Redis hash fields."""
        return {
            "state": self.state,
            "card": self.card or "",
            "grade": self.grade or "",
            "gallons": f"{self.gallons:.3f}",
            "total_cost": f"{self.total_cost:.2f}",
        }

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> PumpStatus:
        return cls(
            state=mapping.get("state", ""),
            card=mapping.get("card") or None,
            grade=mapping.get("grade") or None,
            gallons=Decimal(mapping.get("gallons") or "0"),
            total_cost=Decimal(mapping.get("total_cost") or "0"),
        )


class PumpStatusRepository(RedisStateRepository):
    """
    Repository for the pump status mirror.

    Keys:
    - <prefix>:status: Current state, masked card, grade and totals
    - <prefix>:prices: Grade name -> "octane,price"
    """

    KEY_STATUS = "status"
    KEY_PRICES = "prices"

    async def save_status(self, status: PumpStatus) -> None:
        """Replace the stored status snapshot."""
        await self.replace_hash(self.key(self.KEY_STATUS), status.to_mapping())

    async def get_status(self) -> Optional[PumpStatus]:
        """Get the stored status snapshot, or None if never saved."""
        mapping = await self.get_hash(self.key(self.KEY_STATUS))
        return PumpStatus.from_mapping(mapping) if mapping else None

    async def save_prices(self, grades: Sequence[FuelGrade]) -> None:
        """Replace the published price list."""
        await self.replace_hash(
            self.key(self.KEY_PRICES),
            {
                grade.name: f"{grade.octane_rating},{grade.price_per_gallon:.2f}"
                for grade in grades
            },
        )

    async def get_prices(self) -> dict[str, str]:
        """Get the published price list."""
        return await self.get_hash(self.key(self.KEY_PRICES))
