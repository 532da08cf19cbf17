from fastapi import APIRouter, Depends, HTTPException, Response

from cardpoints.api.dependencies import get_service
from cardpoints.domain.errors import RuleNotFoundError, ValidationError
from cardpoints.domain.models import RewardRule, RuleDraft
from cardpoints.schemas.responses import RuleListResponse
from cardpoints.service import RewardsService

router = APIRouter(prefix="/rules", tags=["rules"])


@router.get("", response_model=RuleListResponse)
async def list_rules(instrument_type_id: str, service: RewardsService = Depends(get_service)) -> RuleListResponse:
    rules = await service.rule_store.list_rules(instrument_type_id)
    return RuleListResponse(instrument_type_id=instrument_type_id, rules=rules)


@router.post("", response_model=RewardRule, status_code=201)
async def create_rule(draft: RuleDraft, service: RewardsService = Depends(get_service)) -> RewardRule:
    try:
        return await service.rule_store.create_rule(draft)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.put("/{rule_id}", response_model=RewardRule)
async def update_rule(
    rule_id: str,
    draft: RuleDraft,
    service: RewardsService = Depends(get_service),
) -> RewardRule:
    rule = RewardRule(**draft.model_dump(), id=rule_id)
    try:
        return await service.rule_store.update_rule(rule)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(rule_id: str, service: RewardsService = Depends(get_service)) -> Response:
    await service.rule_store.delete_rule(rule_id)
    return Response(status_code=204)
