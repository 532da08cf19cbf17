import datetime as dt
import logging
from collections.abc import Iterable
from typing import Protocol

from cardpoints.domain.models import SpendPeriodRecord

logger = logging.getLogger(__name__)

RecordKey = tuple[str, str, str | None]


class SpendTracker(Protocol):
    async def get_used(self, instrument_id: str, period_key: str, bucket: str | None = None) -> int: ...

    async def record_usage(
        self,
        instrument_id: str,
        period_key: str,
        delta: int,
        bucket: str | None = None,
    ) -> int: ...

    async def recalculate(
        self,
        instrument_id: str,
        period_key: str,
        history: Iterable[tuple[dt.date, int]],
        bucket: str | None = None,
    ) -> int: ...


class MonthlySpendTracker:
    """Bonus points consumed per instrument, period and cap bucket.

    Period keys are opaque here; a key the tracker has not seen yet simply
    starts a fresh record, which is how a period rollover shows up.
    """

    def __init__(self) -> None:
        self._records: dict[RecordKey, SpendPeriodRecord] = {}

    async def get_used(self, instrument_id: str, period_key: str, bucket: str | None = None) -> int:
        record = self._records.get((instrument_id, period_key, bucket))
        return record.cumulative_bonus_points_used if record else 0

    async def get_record(
        self,
        instrument_id: str,
        period_key: str,
        bucket: str | None = None,
    ) -> SpendPeriodRecord | None:
        return self._records.get((instrument_id, period_key, bucket))

    async def records_for(self, instrument_id: str) -> list[SpendPeriodRecord]:
        selected = [r for key, r in self._records.items() if key[0] == instrument_id]
        return sorted(selected, key=lambda r: (r.period_key, r.bucket or ""))

    async def record_usage(
        self,
        instrument_id: str,
        period_key: str,
        delta: int,
        bucket: str | None = None,
    ) -> int:
        if delta < 0:
            raise ValueError(f"usage delta must not be negative, got {delta}")

        if not delta:
            return await self.get_used(instrument_id, period_key, bucket)

        record = self._record(instrument_id, period_key, bucket)
        record.cumulative_bonus_points_used += int(delta)
        logger.info(
            "recorded %s bonus points for %s/%s (%s), total %s",
            delta,
            instrument_id,
            period_key,
            bucket or "instrument",
            record.cumulative_bonus_points_used,
        )
        return record.cumulative_bonus_points_used

    async def recalculate(
        self,
        instrument_id: str,
        period_key: str,
        history: Iterable[tuple[dt.date, int]],
        bucket: str | None = None,
    ) -> int:
        total = 0
        for _, bonus_points in history:
            if bonus_points < 0:
                raise ValueError(f"historical bonus points must not be negative, got {bonus_points}")
            total += int(bonus_points)

        record = self._record(instrument_id, period_key, bucket)
        previous = record.cumulative_bonus_points_used
        record.cumulative_bonus_points_used = total
        if previous != total:
            logger.warning(
                "corrected bonus usage for %s/%s (%s) from %s to %s",
                instrument_id,
                period_key,
                bucket or "instrument",
                previous,
                total,
            )
        return total

    def _record(self, instrument_id: str, period_key: str, bucket: str | None) -> SpendPeriodRecord:
        key = (instrument_id, period_key, bucket)
        record = self._records.get(key)
        if record is None:
            record = SpendPeriodRecord(instrument_id=instrument_id, period_key=period_key, bucket=bucket)
            self._records[key] = record
        return record
