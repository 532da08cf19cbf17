import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class RateSource(Protocol):
    async def rate(self, from_currency: str, to_currency: str) -> float | None: ...


class StaticRateSource:
    """Conversion rates from a fixed mapping, e.g. ``{"DBS Points": {"KrisFlyer": 2.0}}``."""

    def __init__(self, rates: dict[str, dict[str, float]] | None = None):
        self._rates = {
            source.lower(): {target.lower(): float(value) for target, value in targets.items()}
            for source, targets in (rates or {}).items()
        }

    @classmethod
    def from_file(cls, rates_file: str) -> "StaticRateSource":
        path = Path(rates_file)
        if not path.exists():
            logger.info("rates file %s not found, no conversions available", path)
            return cls()

        with path.open("r", encoding="utf-8") as fh:
            return cls(json.load(fh))

    async def rate(self, from_currency: str, to_currency: str) -> float | None:
        return self._rates.get(from_currency.lower(), {}).get(to_currency.lower())


class PointsConverter:
    def __init__(
        self,
        rate_source: RateSource,
        cache_ttl_seconds: float = 900.0,
        lookup_timeout_seconds: float | None = 5.0,
        clock=time.monotonic,
    ):
        self.rate_source = rate_source
        self.cache_ttl_seconds = cache_ttl_seconds
        self.lookup_timeout_seconds = lookup_timeout_seconds
        self._clock = clock
        self._cache: dict[tuple[str, str], tuple[float, float | None]] = {}

    async def rate_for(self, from_currency: str, to_currency: str) -> float | None:
        if from_currency.strip().lower() == to_currency.strip().lower():
            return 1.0

        key = (from_currency.lower(), to_currency.lower())
        cached = self._cache.get(key)
        if cached is not None and self._clock() - cached[0] < self.cache_ttl_seconds:
            return cached[1]

        rate = await asyncio.wait_for(
            self.rate_source.rate(from_currency, to_currency),
            timeout=self.lookup_timeout_seconds,
        )
        if rate is None:
            logger.debug("no conversion rate from %s to %s", from_currency, to_currency)
        self._cache[key] = (self._clock(), rate)
        return rate

    async def convert(self, from_currency: str, to_currency: str, points: float) -> float | None:
        rate = await self.rate_for(from_currency, to_currency)
        if rate is None:
            return None
        return points * rate

    def clear_cache(self) -> None:
        self._cache.clear()
