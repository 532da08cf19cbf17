import logging
from collections.abc import Sequence

from cardpoints.domain.models import (
    Condition,
    ContactlessOnlyCondition,
    CurrencyCondition,
    MccCondition,
    MerchantCondition,
    OnlineOnlyCondition,
    RewardRule,
    TransactionCandidate,
)

logger = logging.getLogger(__name__)


def _mcc_matches(condition: MccCondition, candidate: TransactionCandidate) -> bool:
    mcc = (candidate.mcc or "").strip()
    if not mcc:
        return condition.operation == "exclude"
    listed = mcc in condition.values
    return listed if condition.operation == "include" else not listed


def _merchant_hit(merchant: str, value: str) -> bool:
    # Substring match covers merchants with variable suffixes ("GRAB*1234").
    needle = value.lower()
    return merchant == needle or needle in merchant


def _merchant_matches(condition: MerchantCondition, candidate: TransactionCandidate) -> bool:
    merchant = candidate.merchant_name.strip().lower()
    if not merchant:
        return condition.operation == "exclude"
    hit = any(_merchant_hit(merchant, value) for value in condition.values)
    return hit if condition.operation == "include" else not hit


def _currency_matches(condition: CurrencyCondition, candidate: TransactionCandidate) -> bool:
    currency = candidate.currency.strip().upper()
    if not currency:
        return False
    listed = currency in {value.upper() for value in condition.values}
    return listed if condition.operation == "equals" else not listed


def condition_matches(condition: Condition, candidate: TransactionCandidate) -> bool:
    if isinstance(condition, MccCondition):
        return _mcc_matches(condition, candidate)
    if isinstance(condition, MerchantCondition):
        return _merchant_matches(condition, candidate)
    if isinstance(condition, CurrencyCondition):
        return _currency_matches(condition, candidate)
    if isinstance(condition, OnlineOnlyCondition):
        return candidate.is_online is True
    if isinstance(condition, ContactlessOnlyCondition):
        return candidate.is_contactless is True
    # Unknown condition shapes never match.
    return False


def matches(conditions: Sequence[Condition], candidate: TransactionCandidate) -> bool:
    for condition in conditions:
        passed = condition_matches(condition, candidate)
        logger.debug("condition %s %s", condition.type, "passed" if passed else "failed")
        if not passed:
            return False
    return True


def rule_applies(rule: RewardRule, candidate: TransactionCandidate) -> bool:
    if not rule.enabled:
        return False
    if not rule.is_active_on(candidate.date):
        return False
    return matches(rule.conditions, candidate)
