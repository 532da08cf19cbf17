import datetime as dt
import json
import logging
from pathlib import Path
from typing import Protocol

from cardpoints.domain.models import Instrument
from cardpoints.engine.periods import calendar_period_key

logger = logging.getLogger(__name__)


class PeriodSpendSource(Protocol):
    async def spend_for(self, instrument: Instrument, day: dt.date) -> float | None: ...


class StaticPeriodSpendSource:
    """Known spend per instrument and calendar month, e.g. ``{"card-1": {"2025-11": 640.0}}``."""

    def __init__(self, spend: dict[str, dict[str, float]] | None = None):
        self._spend = {
            instrument_id: {period_key: float(value) for period_key, value in periods.items()}
            for instrument_id, periods in (spend or {}).items()
        }

    @classmethod
    def from_file(cls, spend_file: str) -> "StaticPeriodSpendSource":
        path = Path(spend_file)
        if not path.exists():
            logger.info("period spend file %s not found, spend is unknown for every instrument", path)
            return cls()

        with path.open("r", encoding="utf-8") as fh:
            return cls(json.load(fh))

    async def spend_for(self, instrument: Instrument, day: dt.date) -> float | None:
        return self._spend.get(instrument.id, {}).get(calendar_period_key(day))
