import asyncio
import logging
from dataclasses import dataclass, field

from cardpoints.domain.models import (
    BonusTier,
    CalculationResult,
    Instrument,
    RewardRule,
    RewardSpec,
    TransactionCandidate,
)
from cardpoints.engine.matcher import rule_applies
from cardpoints.engine.periods import period_key_for
from cardpoints.engine.rounding import effective_units, points_for
from cardpoints.repository.instruments import InstrumentRegistry
from cardpoints.repository.rule_store import RuleStore
from cardpoints.repository.spend_tracker import SpendTracker

logger = logging.getLogger(__name__)

DEFAULT_POINTS_CURRENCY = "points"


@dataclass
class _Selection:
    rule: RewardRule | None
    min_spend_met: bool = True
    messages: list[str] = field(default_factory=list)


def default_reward(instrument: Instrument) -> RewardSpec:
    return RewardSpec(
        base_multiplier=1,
        bonus_multiplier=0,
        points_currency=instrument.points_currency or DEFAULT_POINTS_CURRENCY,
    )


def select_tier(tiers: list[BonusTier], spend: float) -> BonusTier | None:
    for tier in tiers:
        if tier.contains(spend):
            return tier
    return None


class RewardCalculator:
    def __init__(
        self,
        rule_store: RuleStore,
        spend_tracker: SpendTracker,
        instruments: InstrumentRegistry | None = None,
        lookup_timeout_seconds: float | None = 5.0,
    ):
        self.rule_store = rule_store
        self.spend_tracker = spend_tracker
        self.instruments = instruments or InstrumentRegistry()
        self.lookup_timeout_seconds = lookup_timeout_seconds

    async def calculate(
        self,
        candidate: TransactionCandidate,
        instrument: Instrument | None = None,
        *,
        record_usage: bool = True,
    ) -> CalculationResult:
        if instrument is None:
            instrument = self.instruments.get(candidate.instrument_id)

        amount = candidate.calculation_amount
        if amount <= 0:
            return CalculationResult(
                points_currency=instrument.points_currency or DEFAULT_POINTS_CURRENCY,
                messages=["Amount is not positive; no points earned"],
            )

        selection = await self._select_rule(candidate, instrument)
        rule = selection.rule
        reward = rule.reward if rule is not None else default_reward(instrument)
        messages = list(selection.messages)

        units = effective_units(amount, reward.block_size, reward.amount_rounding_strategy)
        base_points = points_for(units, reward.block_size, reward.base_multiplier, reward.points_rounding_strategy)

        applied_tier: BonusTier | None = None
        bonus_multiplier = reward.bonus_multiplier
        if reward.bonus_tiers:
            applied_tier = select_tier(reward.bonus_tiers, amount)
            if applied_tier is None:
                bonus_multiplier = 0
                messages.append("Not eligible for bonus: amount outside every bonus tier")
            else:
                bonus_multiplier = applied_tier.multiplier

        raw_bonus = points_for(units, reward.block_size, bonus_multiplier, reward.points_rounding_strategy)
        bonus_points = raw_bonus
        remaining_cap: int | None = None

        if rule is not None and reward.monthly_cap is not None:
            bonus_points, remaining_cap = await self._apply_cap(
                candidate, instrument, rule, raw_bonus, record_usage, messages
            )

        total_points = base_points + bonus_points
        logger.info(
            "%s on %s: rule=%s base=%s bonus=%s total=%s %s",
            amount,
            instrument.id,
            rule.name if rule else "default",
            base_points,
            bonus_points,
            total_points,
            reward.points_currency,
        )

        return CalculationResult(
            base_points=base_points,
            bonus_points=bonus_points,
            total_points=total_points,
            points_currency=reward.points_currency,
            applied_rule=rule,
            applied_tier=applied_tier,
            remaining_monthly_bonus_cap=remaining_cap,
            min_spend_met=selection.min_spend_met,
            messages=messages,
        )

    async def _select_rule(self, candidate: TransactionCandidate, instrument: Instrument) -> _Selection:
        rules = await asyncio.wait_for(
            self.rule_store.list_rules(instrument.type_id),
            timeout=self.lookup_timeout_seconds,
        )
        selection = _Selection(rule=None)

        for rule in rules:
            if not rule_applies(rule, candidate):
                continue

            min_spend = rule.reward.monthly_min_spend
            if min_spend is not None and candidate.period_spend is not None and candidate.period_spend < min_spend:
                selection.min_spend_met = False
                selection.messages.append(f"Monthly minimum spend of {min_spend:g} not met for {rule.name}")
                continue

            selection.rule = rule
            return selection

        logger.warning(
            "no reward rule matched for %s (%s of %s rules checked); using default 1x earn",
            instrument.id,
            instrument.type_id,
            len(rules),
        )
        selection.messages.append("No matching reward rule; default 1x earn rate applied")
        return selection

    async def _apply_cap(
        self,
        candidate: TransactionCandidate,
        instrument: Instrument,
        rule: RewardRule,
        raw_bonus: int,
        record_usage: bool,
        messages: list[str],
    ) -> tuple[int, int]:
        reward = rule.reward
        period_key = period_key_for(candidate.date, reward.period_type, instrument)
        bucket = reward.cap_group_id or rule.id

        used = await self.spend_tracker.get_used(instrument.id, period_key, bucket)
        available = max(0, reward.monthly_cap - used)
        bonus_points = min(raw_bonus, available)

        if raw_bonus > 0 and available == 0:
            messages.append("Monthly bonus points cap reached")
        elif bonus_points < raw_bonus:
            messages.append(f"Bonus points capped at {bonus_points} due to monthly limit")

        if record_usage and bonus_points > 0:
            await self.spend_tracker.record_usage(instrument.id, period_key, bonus_points, bucket)

        return bonus_points, available - bonus_points
