import datetime as dt

from pydantic import BaseModel, Field

from cardpoints.domain.models import Instrument, TransactionCandidate


class PurchaseDetails(BaseModel):
    amount: float = Field(allow_inf_nan=False)
    currency: str = "SGD"
    converted_amount: float | None = Field(default=None, allow_inf_nan=False)
    converted_currency: str | None = None
    mcc: str | None = None
    merchant_name: str = ""
    is_online: bool = False
    is_contactless: bool = False
    date: dt.date = Field(default_factory=dt.date.today)
    period_spend: float | None = Field(default=None, allow_inf_nan=False)

    def to_candidate(self, instrument_id: str) -> TransactionCandidate:
        fields = self.model_dump(include=set(PurchaseDetails.model_fields))
        return TransactionCandidate(**fields, instrument_id=instrument_id)


class CalculateRequest(PurchaseDetails):
    instrument_id: str
    record_usage: bool = True


class SimulateRequest(PurchaseDetails):
    target_currency: str | None = None
    instruments: list[Instrument] | None = None
