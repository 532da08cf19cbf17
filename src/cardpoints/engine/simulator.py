import asyncio
import logging

from cardpoints.domain.models import (
    CalculationResult,
    Instrument,
    SimulationResult,
    TransactionCandidate,
)
from cardpoints.engine.calculator import DEFAULT_POINTS_CURRENCY, RewardCalculator
from cardpoints.engine.selectors import eligible_instruments, rank_results
from cardpoints.repository.period_spend import PeriodSpendSource
from cardpoints.repository.rates import PointsConverter

logger = logging.getLogger(__name__)


class Simulator:
    def __init__(
        self,
        calculator: RewardCalculator,
        converter: PointsConverter,
        instrument_timeout_seconds: float | None = 10.0,
        period_spend_source: PeriodSpendSource | None = None,
    ):
        self.calculator = calculator
        self.converter = converter
        self.instrument_timeout_seconds = instrument_timeout_seconds
        self.period_spend_source = period_spend_source

    async def simulate_all_instruments(
        self,
        candidate: TransactionCandidate,
        instruments: list[Instrument],
        target_currency: str,
    ) -> list[SimulationResult]:
        eligible = eligible_instruments(instruments)
        outcomes = await asyncio.gather(
            *(self._bounded(candidate, item, target_currency) for item in eligible),
            return_exceptions=True,
        )

        results = []
        for instrument, outcome in zip(eligible, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                results.append(self._failed(instrument, outcome))
            else:
                results.append(outcome)

        return rank_results(results)

    async def simulate_instrument(
        self,
        candidate: TransactionCandidate,
        instrument: Instrument,
        target_currency: str,
    ) -> SimulationResult:
        # The purchase is hypothetical, so cap usage is read but never recorded.
        scoped = candidate.model_copy(update={"instrument_id": instrument.id})
        if self.period_spend_source is not None:
            period_spend = await self._period_spend(instrument, candidate)
            scoped = scoped.model_copy(update={"period_spend": period_spend})
        calculation = await self.calculator.calculate(scoped, instrument, record_usage=False)
        rate = await self.converter.rate_for(calculation.points_currency, target_currency)

        return SimulationResult(
            instrument=instrument,
            calculation=calculation,
            converted_value=None if rate is None else calculation.total_points * rate,
            conversion_rate=rate,
        )

    async def _period_spend(self, instrument: Instrument, candidate: TransactionCandidate) -> float | None:
        try:
            spend = await self.period_spend_source.spend_for(instrument, candidate.date)
        except Exception as exc:
            # Unknown spend leaves minimum-spend requirements unchecked.
            logger.warning("period spend lookup failed for %s: %s", instrument.id, exc)
            return None
        return candidate.period_spend if spend is None else spend

    async def _bounded(
        self,
        candidate: TransactionCandidate,
        instrument: Instrument,
        target_currency: str,
    ) -> SimulationResult:
        return await asyncio.wait_for(
            self.simulate_instrument(candidate, instrument, target_currency),
            timeout=self.instrument_timeout_seconds,
        )

    def _failed(self, instrument: Instrument, exc: Exception) -> SimulationResult:
        if isinstance(exc, asyncio.TimeoutError):
            reason = "Timed out calculating rewards"
        else:
            reason = str(exc) or type(exc).__name__
        logger.warning("simulation failed for %s (%s): %s", instrument.id, instrument.name, reason)

        return SimulationResult(
            instrument=instrument,
            calculation=CalculationResult(
                points_currency=instrument.points_currency or DEFAULT_POINTS_CURRENCY,
                messages=["Calculation failed for this instrument"],
            ),
            error=reason,
        )
