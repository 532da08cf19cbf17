import datetime as dt
import re
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AmountRounding(str, Enum):
    NONE = "none"
    FLOOR = "floor"
    CEILING = "ceiling"


class PointsRounding(str, Enum):
    FLOOR = "floor"
    CEILING = "ceiling"
    NEAREST = "nearest"


class PeriodType(str, Enum):
    CALENDAR = "calendar"
    STATEMENT = "statement"


class InstrumentKind(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PREPAID_CARD = "prepaid_card"
    CASH = "cash"


class _ListCondition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    values: list[str] = Field(min_length=1)

    @field_validator("values", mode="before")
    @classmethod
    def _stringify_numbers(cls, values: object) -> object:
        # Rule files may list MCCs as bare numbers.
        if not isinstance(values, (list, tuple)):
            return values
        return [str(value) if isinstance(value, int) and not isinstance(value, bool) else value for value in values]

    @field_validator("values")
    @classmethod
    def _strip_values(cls, values: list[str]) -> list[str]:
        cleaned = [str(value).strip() for value in values]
        if any(not value for value in cleaned):
            raise ValueError("condition values must be non-empty strings")
        return cleaned


class MccCondition(_ListCondition):
    type: Literal["mcc"] = "mcc"
    operation: Literal["include", "exclude"]


class MerchantCondition(_ListCondition):
    type: Literal["merchant"] = "merchant"
    operation: Literal["include", "exclude"] = "include"


class CurrencyCondition(_ListCondition):
    type: Literal["currency"] = "currency"
    operation: Literal["equals", "exclude"] = "equals"


class OnlineOnlyCondition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["online-only"] = "online-only"


class ContactlessOnlyCondition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["contactless-only"] = "contactless-only"


Condition = Annotated[
    Union[
        MccCondition,
        MerchantCondition,
        CurrencyCondition,
        OnlineOnlyCondition,
        ContactlessOnlyCondition,
    ],
    Field(discriminator="type"),
]


class BonusTier(BaseModel):
    min_spend: float = Field(default=0, ge=0)
    max_spend: float | None = None
    multiplier: float = Field(ge=0, allow_inf_nan=False)
    name: str | None = None

    @model_validator(mode="after")
    def _check_bracket(self) -> "BonusTier":
        if self.max_spend is not None and self.max_spend <= self.min_spend:
            raise ValueError("max_spend must be greater than min_spend")
        return self

    def contains(self, spend: float) -> bool:
        if spend < self.min_spend:
            return False
        return self.max_spend is None or spend < self.max_spend


class RewardSpec(BaseModel):
    base_multiplier: float = Field(default=1, ge=0, allow_inf_nan=False)
    bonus_multiplier: float = Field(default=0, ge=0, allow_inf_nan=False)
    points_currency: str = "points"
    amount_rounding_strategy: AmountRounding = AmountRounding.NONE
    points_rounding_strategy: PointsRounding = PointsRounding.FLOOR
    block_size: float = Field(default=1, gt=0, allow_inf_nan=False)
    monthly_cap: int | None = Field(default=None, ge=0)
    bonus_tiers: list[BonusTier] = Field(default_factory=list)
    monthly_min_spend: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    period_type: PeriodType = PeriodType.CALENDAR
    cap_group_id: str | None = None


class RuleDraft(BaseModel):
    instrument_type_id: str
    name: str
    description: str = ""
    enabled: bool = True
    priority: int = 0
    conditions: list[Condition] = Field(default_factory=list)
    reward: RewardSpec = Field(default_factory=RewardSpec)
    valid_from: dt.date | None = None
    valid_until: dt.date | None = None

    @model_validator(mode="after")
    def _check_window(self) -> "RuleDraft":
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be earlier than valid_from")
        return self


class RewardRule(RuleDraft):
    id: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    def is_active_on(self, day: dt.date) -> bool:
        if self.valid_from is not None and day < self.valid_from:
            return False
        if self.valid_until is not None and day > self.valid_until:
            return False
        return True


class TransactionCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float = Field(allow_inf_nan=False)
    currency: str
    converted_amount: float | None = Field(default=None, allow_inf_nan=False)
    converted_currency: str | None = None
    mcc: str | None = None
    merchant_name: str = ""
    is_online: bool = False
    is_contactless: bool = False
    date: dt.date
    instrument_id: str
    period_spend: float | None = Field(default=None, allow_inf_nan=False)

    @property
    def calculation_amount(self) -> float:
        if self.converted_amount is not None:
            return self.converted_amount
        return self.amount


def derive_instrument_type_id(issuer: str, name: str) -> str:
    if not issuer.strip() or not name.strip():
        raise ValueError("issuer and name are required to derive an instrument type id")
    issuer_part = re.sub(r"\s+", "-", issuer.strip().lower())
    name_part = re.sub(r"\s+", "-", name.strip().lower())
    return f"{issuer_part}-{name_part}"


class Instrument(BaseModel):
    id: str
    name: str
    issuer: str = ""
    kind: InstrumentKind = InstrumentKind.CREDIT_CARD
    active: bool = True
    instrument_type_id: str | None = None
    points_currency: str | None = None
    statement_day: int = Field(default=1, ge=1, le=31)

    @property
    def type_id(self) -> str:
        if self.instrument_type_id:
            return self.instrument_type_id
        return derive_instrument_type_id(self.issuer, self.name)

    @property
    def is_cash(self) -> bool:
        return self.kind == InstrumentKind.CASH


class CalculationResult(BaseModel):
    base_points: int = 0
    bonus_points: int = 0
    total_points: int = 0
    points_currency: str = "points"
    applied_rule: RewardRule | None = None
    applied_tier: BonusTier | None = None
    remaining_monthly_bonus_cap: int | None = None
    min_spend_met: bool = True
    messages: list[str] = Field(default_factory=list)


class SpendPeriodRecord(BaseModel):
    instrument_id: str
    period_key: str
    bucket: str | None = None
    cumulative_bonus_points_used: int = 0


class SimulationResult(BaseModel):
    instrument: Instrument
    calculation: CalculationResult
    converted_value: float | None = None
    conversion_rate: float | None = None
    rank: int = 0
    error: str | None = None
