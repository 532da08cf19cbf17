import asyncio

import pytest

from cardpoints.domain.models import CalculationResult, Instrument, InstrumentKind, SimulationResult
from cardpoints.engine.calculator import RewardCalculator
from cardpoints.engine.selectors import eligible_instruments, rank_results
from cardpoints.engine.simulator import Simulator
from cardpoints.repository.instruments import InstrumentRegistry
from cardpoints.repository.period_spend import StaticPeriodSpendSource
from cardpoints.repository.rates import PointsConverter, StaticRateSource
from cardpoints.repository.rule_store import CachingRuleStore, InMemoryRuleStore
from cardpoints.repository.spend_tracker import MonthlySpendTracker
from conftest import make_candidate, make_rule

MILES = "KrisFlyer"

RATES = {
    "Alpha Points": {MILES: 2.0},
    "Beta Miles": {MILES: 1.0},
}


def _card(card_id: str, type_id: str, points_currency: str | None, **fields) -> Instrument:
    return Instrument(
        id=card_id,
        name=fields.pop("name", card_id.title()),
        issuer="Bank",
        instrument_type_id=type_id,
        points_currency=points_currency,
        **fields,
    )


ALPHA = _card("alpha", "alpha-card", "Alpha Points")
BETA = _card("beta", "beta-card", "Beta Miles")
GAMMA = _card("gamma", "gamma-card", "Gamma Dollars")
DORMANT = _card("dormant", "alpha-card", "Alpha Points", active=False)
CASH = _card("cash", "cash", None, kind=InstrumentKind.CASH)

RULES = [
    make_rule("alpha-base", "alpha-card", reward={"base_multiplier": 1, "points_currency": "Alpha Points"}),
    make_rule(
        "alpha-online",
        "alpha-card",
        priority=10,
        conditions=[{"type": "online-only"}],
        reward={"base_multiplier": 1, "bonus_multiplier": 3, "points_currency": "Alpha Points", "monthly_cap": 1000},
    ),
    make_rule("beta-base", "beta-card", reward={"base_multiplier": 1.5, "points_currency": "Beta Miles"}),
    make_rule("gamma-base", "gamma-card", reward={"base_multiplier": 5, "points_currency": "Gamma Dollars"}),
]


def _simulator(rule_store=None, tracker=None, instrument_timeout_seconds: float | None = 10.0) -> Simulator:
    calculator = RewardCalculator(
        rule_store or InMemoryRuleStore(RULES),
        tracker or MonthlySpendTracker(),
        InstrumentRegistry([ALPHA, BETA, GAMMA, DORMANT]),
    )
    return Simulator(calculator, PointsConverter(StaticRateSource(RATES)), instrument_timeout_seconds)


def _result(card_id: str, value: float | None, name: str | None = None) -> SimulationResult:
    return SimulationResult(
        instrument=_card(card_id, f"{card_id}-card", None, name=name or card_id),
        calculation=CalculationResult(),
        converted_value=value,
    )


@pytest.mark.asyncio
async def test_simulation_skips_inactive_instruments() -> None:
    results = await _simulator().simulate_all_instruments(make_candidate(amount=100), [ALPHA, BETA, DORMANT], MILES)

    assert [item.instrument.id for item in results] == ["alpha", "beta"]
    assert [item.rank for item in results] == [1, 2]
    assert [item.converted_value for item in results] == [200.0, 150.0]


@pytest.mark.asyncio
async def test_simulation_ranks_by_converted_value() -> None:
    results = await _simulator().simulate_all_instruments(
        make_candidate(amount=100, is_online=True), [BETA, ALPHA], MILES
    )

    best = results[0]
    assert best.instrument.id == "alpha"
    assert best.calculation.total_points == 400
    assert best.conversion_rate == 2.0
    assert best.converted_value == 800.0


@pytest.mark.asyncio
async def test_missing_conversion_rate_ranks_last() -> None:
    results = await _simulator().simulate_all_instruments(make_candidate(amount=100), [GAMMA, ALPHA, BETA], MILES)

    assert [item.instrument.id for item in results] == ["alpha", "beta", "gamma"]
    assert results[-1].converted_value is None
    assert results[-1].conversion_rate is None
    assert results[-1].calculation.total_points == 500
    assert results[-1].error is None


@pytest.mark.asyncio
async def test_cash_is_never_simulated() -> None:
    results = await _simulator().simulate_all_instruments(make_candidate(), [CASH, BETA], MILES)

    assert [item.instrument.id for item in results] == ["beta"]


@pytest.mark.asyncio
async def test_target_matching_points_currency_converts_one_to_one() -> None:
    results = await _simulator().simulate_all_instruments(make_candidate(amount=100), [ALPHA], "alpha points")

    assert results[0].conversion_rate == 1.0
    assert results[0].converted_value == 100.0


@pytest.mark.asyncio
async def test_simulation_does_not_consume_cap() -> None:
    tracker = MonthlySpendTracker()
    simulator = _simulator(tracker=tracker)
    candidate = make_candidate(amount=100, is_online=True)

    first = await simulator.simulate_all_instruments(candidate, [ALPHA], MILES)
    second = await simulator.simulate_all_instruments(candidate, [ALPHA], MILES)

    assert first[0].calculation.bonus_points == second[0].calculation.bonus_points == 300
    assert await tracker.records_for("alpha") == []


class FailingRuleStore(InMemoryRuleStore):
    def __init__(self, rules, failing_type_id: str):
        super().__init__(rules)
        self.failing_type_id = failing_type_id

    async def list_rules(self, instrument_type_id):
        if instrument_type_id == self.failing_type_id:
            raise RuntimeError("rule store unavailable")
        return await super().list_rules(instrument_type_id)


class SlowRuleStore(InMemoryRuleStore):
    def __init__(self, rules, slow_type_id: str):
        super().__init__(rules)
        self.slow_type_id = slow_type_id

    async def list_rules(self, instrument_type_id):
        if instrument_type_id == self.slow_type_id:
            await asyncio.sleep(5)
        return await super().list_rules(instrument_type_id)


@pytest.mark.asyncio
async def test_one_failing_instrument_does_not_abort_the_run() -> None:
    simulator = _simulator(rule_store=FailingRuleStore(RULES, "beta-card"))

    results = await simulator.simulate_all_instruments(make_candidate(amount=100), [ALPHA, BETA], MILES)

    failed = results[-1]
    assert results[0].instrument.id == "alpha"
    assert failed.instrument.id == "beta"
    assert failed.error == "rule store unavailable"
    assert failed.converted_value is None
    assert failed.calculation.total_points == 0
    assert failed.calculation.messages == ["Calculation failed for this instrument"]


@pytest.mark.asyncio
async def test_slow_instrument_times_out() -> None:
    simulator = _simulator(rule_store=SlowRuleStore(RULES, "alpha-card"), instrument_timeout_seconds=0.05)

    results = await simulator.simulate_all_instruments(make_candidate(amount=100), [ALPHA, BETA], MILES)

    assert [item.instrument.id for item in results] == ["beta", "alpha"]
    assert results[1].error == "Timed out calculating rewards"


@pytest.mark.asyncio
async def test_no_eligible_instruments_gives_empty_result() -> None:
    assert await _simulator().simulate_all_instruments(make_candidate(), [DORMANT, CASH], MILES) == []


def test_rank_results_orders_ties_by_name_and_keeps_unknowns_in_input_order() -> None:
    ranked = rank_results(
        [
            _result("u1", None),
            _result("b", 50.0, name="Zeta"),
            _result("u2", None),
            _result("a", 50.0, name="Alpha"),
            _result("c", 75.0),
        ]
    )

    assert [item.instrument.id for item in ranked] == ["c", "a", "b", "u1", "u2"]
    assert [item.rank for item in ranked] == [1, 2, 3, 4, 5]


def test_eligible_instruments_filters_inactive_and_cash() -> None:
    assert eligible_instruments([ALPHA, DORMANT, CASH, BETA]) == [ALPHA, BETA]


class CountingRateSource(StaticRateSource):
    def __init__(self, rates):
        super().__init__(rates)
        self.calls = 0

    async def rate(self, from_currency, to_currency):
        self.calls += 1
        return await super().rate(from_currency, to_currency)


@pytest.mark.asyncio
async def test_converter_caches_rates_including_misses() -> None:
    source = CountingRateSource(RATES)
    now = [0.0]
    converter = PointsConverter(source, cache_ttl_seconds=60, clock=lambda: now[0])

    assert await converter.rate_for("Alpha Points", MILES) == 2.0
    assert await converter.rate_for("alpha points", "krisflyer") == 2.0
    assert await converter.rate_for("Gamma Dollars", MILES) is None
    assert await converter.rate_for("Gamma Dollars", MILES) is None
    assert source.calls == 2

    now[0] = 61
    await converter.rate_for("Alpha Points", MILES)
    assert source.calls == 3

    converter.clear_cache()
    await converter.rate_for("Alpha Points", MILES)
    assert source.calls == 4


@pytest.mark.asyncio
async def test_converter_convert() -> None:
    converter = PointsConverter(StaticRateSource(RATES))

    assert await converter.convert("Alpha Points", MILES, 120) == 240.0
    assert await converter.convert("Beta Miles", "Beta Miles", 33) == 33
    assert await converter.convert("Gamma Dollars", MILES, 10) is None


class CountingSlowRuleStore(InMemoryRuleStore):
    def __init__(self, rules):
        super().__init__(rules)
        self.list_calls = 0

    async def list_rules(self, instrument_type_id):
        self.list_calls += 1
        await asyncio.sleep(0.01)
        return await super().list_rules(instrument_type_id)


@pytest.mark.asyncio
async def test_batch_shares_one_rule_fetch_per_instrument_type() -> None:
    inner = CountingSlowRuleStore(RULES)
    siblings = [_card(f"alpha-{n}", "alpha-card", "Alpha Points") for n in range(5)]

    results = await _simulator(rule_store=CachingRuleStore(inner)).simulate_all_instruments(
        make_candidate(amount=100), siblings + [BETA], MILES
    )

    assert inner.list_calls == 2
    assert all(item.error is None for item in results)
    assert [item.calculation.total_points for item in results if item.instrument.id != "beta"] == [100] * 5


class PartlyFailingSpendSource(StaticPeriodSpendSource):
    def __init__(self, spend, failing_id: str):
        super().__init__(spend)
        self.failing_id = failing_id

    async def spend_for(self, instrument, day):
        if instrument.id == self.failing_id:
            raise RuntimeError("ledger offline")
        return await super().spend_for(instrument, day)


MIN_SPEND_RULES = [
    make_rule(
        f"{prefix}-premium",
        f"{prefix}-card",
        priority=10,
        reward={"base_multiplier": 1, "bonus_multiplier": 3, "monthly_min_spend": 500, "points_currency": currency},
    )
    for prefix, currency in (("alpha", "Alpha Points"), ("beta", "Beta Miles"))
] + [
    make_rule("alpha-base", "alpha-card", reward={"points_currency": "Alpha Points"}),
    make_rule("beta-base", "beta-card", reward={"points_currency": "Beta Miles"}),
]


def _spend_simulator(spend_source) -> Simulator:
    calculator = RewardCalculator(InMemoryRuleStore(MIN_SPEND_RULES), MonthlySpendTracker())
    return Simulator(calculator, PointsConverter(StaticRateSource(RATES)), period_spend_source=spend_source)


@pytest.mark.asyncio
async def test_each_instrument_uses_its_own_period_spend() -> None:
    simulator = _spend_simulator(
        StaticPeriodSpendSource({"alpha": {"2025-11": 800.0, "2025-10": 0.0}, "beta": {"2025-11": 120.0}})
    )

    results = await simulator.simulate_all_instruments(make_candidate(amount=100, period_spend=0), [ALPHA, BETA], MILES)

    by_id = {item.instrument.id: item.calculation for item in results}
    assert by_id["alpha"].applied_rule.id == "alpha-premium"
    assert by_id["alpha"].total_points == 400
    assert by_id["beta"].applied_rule.id == "beta-base"
    assert by_id["beta"].min_spend_met is False
    assert by_id["beta"].total_points == 100


@pytest.mark.asyncio
async def test_period_spend_lookup_failure_means_unknown_spend() -> None:
    simulator = _spend_simulator(PartlyFailingSpendSource({}, failing_id="alpha"))

    results = await simulator.simulate_all_instruments(make_candidate(amount=100, period_spend=0), [ALPHA, BETA], MILES)

    by_id = {item.instrument.id: item for item in results}
    assert by_id["alpha"].error is None
    assert by_id["alpha"].calculation.applied_rule.id == "alpha-premium"
    # No recorded spend for beta, so the purchase's own period spend applies.
    assert by_id["beta"].calculation.applied_rule.id == "beta-base"
