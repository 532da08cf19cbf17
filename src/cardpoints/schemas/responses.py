from pydantic import BaseModel

from cardpoints.domain.models import RewardRule, SimulationResult


class RuleListResponse(BaseModel):
    instrument_type_id: str
    rules: list[RewardRule]


class SimulateResponse(BaseModel):
    target_currency: str
    best_instrument_id: str | None
    results: list[SimulationResult]
