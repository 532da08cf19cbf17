from fastapi import APIRouter, Depends, HTTPException

from cardpoints.api.dependencies import get_service
from cardpoints.domain.errors import InstrumentNotFoundError
from cardpoints.domain.models import CalculationResult
from cardpoints.schemas.requests import CalculateRequest, SimulateRequest
from cardpoints.schemas.responses import SimulateResponse
from cardpoints.service import RewardsService

router = APIRouter(tags=["rewards"])


@router.post("/calculate", response_model=CalculationResult)
async def calculate(request: CalculateRequest, service: RewardsService = Depends(get_service)) -> CalculationResult:
    candidate = request.to_candidate(request.instrument_id)
    try:
        return await service.calculate(candidate, record_usage=request.record_usage)
    except InstrumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/simulate", response_model=SimulateResponse)
async def simulate(request: SimulateRequest, service: RewardsService = Depends(get_service)) -> SimulateResponse:
    target_currency = request.target_currency or service.default_target_currency
    candidate = request.to_candidate(instrument_id="")
    results = await service.simulate(candidate, request.instruments, target_currency)

    best = next((item for item in results if item.error is None), None)
    return SimulateResponse(
        target_currency=target_currency,
        best_instrument_id=best.instrument.id if best else None,
        results=results,
    )
