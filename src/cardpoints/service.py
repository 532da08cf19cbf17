from cardpoints.config import Settings
from cardpoints.domain.models import (
    CalculationResult,
    Instrument,
    SimulationResult,
    TransactionCandidate,
)
from cardpoints.engine.calculator import RewardCalculator
from cardpoints.engine.simulator import Simulator
from cardpoints.repository.instruments import InstrumentRegistry
from cardpoints.repository.period_spend import PeriodSpendSource, StaticPeriodSpendSource
from cardpoints.repository.rates import PointsConverter, RateSource, StaticRateSource
from cardpoints.repository.rule_store import CachingRuleStore, JsonRuleStore, RuleStore
from cardpoints.repository.spend_tracker import MonthlySpendTracker, SpendTracker


class RewardsService:
    def __init__(
        self,
        rule_store: RuleStore,
        spend_tracker: SpendTracker,
        instruments: InstrumentRegistry,
        rate_source: RateSource,
        default_target_currency: str,
        rate_cache_ttl_seconds: float = 900.0,
        lookup_timeout_seconds: float | None = 5.0,
        simulation_timeout_seconds: float | None = 10.0,
        period_spend_source: PeriodSpendSource | None = None,
    ):
        self.rule_store = rule_store
        self.spend_tracker = spend_tracker
        self.instruments = instruments
        self.default_target_currency = default_target_currency
        self.calculator = RewardCalculator(rule_store, spend_tracker, instruments, lookup_timeout_seconds)
        self.converter = PointsConverter(rate_source, rate_cache_ttl_seconds, lookup_timeout_seconds)
        self.simulator = Simulator(
            self.calculator,
            self.converter,
            simulation_timeout_seconds,
            period_spend_source,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RewardsService":
        return cls(
            rule_store=CachingRuleStore(JsonRuleStore(settings.rules_file), settings.rule_cache_ttl_seconds),
            spend_tracker=MonthlySpendTracker(),
            instruments=InstrumentRegistry.from_file(settings.instruments_file),
            rate_source=StaticRateSource.from_file(settings.rates_file),
            default_target_currency=settings.target_currency,
            rate_cache_ttl_seconds=settings.rate_cache_ttl_seconds,
            lookup_timeout_seconds=settings.lookup_timeout_seconds,
            simulation_timeout_seconds=settings.simulation_timeout_seconds,
            period_spend_source=StaticPeriodSpendSource.from_file(settings.period_spend_file),
        )

    async def calculate(self, candidate: TransactionCandidate, *, record_usage: bool = True) -> CalculationResult:
        return await self.calculator.calculate(candidate, record_usage=record_usage)

    async def simulate(
        self,
        candidate: TransactionCandidate,
        instruments: list[Instrument] | None = None,
        target_currency: str | None = None,
    ) -> list[SimulationResult]:
        if instruments is None:
            instruments = self.instruments.all()
        return await self.simulator.simulate_all_instruments(
            candidate,
            instruments,
            target_currency or self.default_target_currency,
        )
