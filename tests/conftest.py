import datetime as dt

import pytest

from cardpoints.domain.models import Instrument, RewardRule, TransactionCandidate
from cardpoints.engine.calculator import RewardCalculator
from cardpoints.repository.instruments import InstrumentRegistry
from cardpoints.repository.rule_store import InMemoryRuleStore
from cardpoints.repository.spend_tracker import MonthlySpendTracker

PURCHASE_DATE = dt.date(2025, 11, 3)


def make_candidate(**overrides) -> TransactionCandidate:
    fields = {
        "amount": 100.0,
        "currency": "SGD",
        "merchant_name": "Cold Storage",
        "date": PURCHASE_DATE,
        "instrument_id": "card-1",
    }
    fields.update(overrides)
    return TransactionCandidate(**fields)


def make_rule(rule_id: str, instrument_type_id: str = "bank-card", **fields) -> RewardRule:
    fields.setdefault("name", rule_id)
    return RewardRule.model_validate({"id": rule_id, "instrument_type_id": instrument_type_id, **fields})


@pytest.fixture()
def instrument() -> Instrument:
    return Instrument(
        id="card-1",
        name="Card",
        issuer="Bank",
        instrument_type_id="bank-card",
        points_currency="Bank Points",
    )


@pytest.fixture()
def tracker() -> MonthlySpendTracker:
    return MonthlySpendTracker()


@pytest.fixture()
def build_calculator(instrument, tracker):
    def _build(rules: list[RewardRule]) -> RewardCalculator:
        return RewardCalculator(InMemoryRuleStore(rules), tracker, InstrumentRegistry([instrument]))

    return _build
