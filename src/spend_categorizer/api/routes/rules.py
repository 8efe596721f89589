from typing import Annotated

from fastapi import APIRouter, Depends, Query

from spend_categorizer.api.dependencies import get_service, http_error
from spend_categorizer.api.schemas import CacheClearResponse, RuleCreateRequest, RuleUpdateRequest
from spend_categorizer.errors import CategorizerError
from spend_categorizer.manager import CategorizerService
from spend_categorizer.models import Rule, SeedResult
from spend_categorizer.services.suggestions import RuleSuggestion

router = APIRouter(prefix="/api")


@router.get("/rules", response_model=list[Rule])
async def list_rules(
    household_id: Annotated[str, Query()],
    service: Annotated[CategorizerService, Depends(get_service)],
) -> list[Rule]:
    try:
        return service.catalog.household_rules(household_id)
    except CategorizerError as e:
        raise http_error(e) from e


@router.get("/rules/suggestions", response_model=list[RuleSuggestion])
async def rule_suggestions(
    household_id: Annotated[str, Query()],
    service: Annotated[CategorizerService, Depends(get_service)],
) -> list[RuleSuggestion]:
    try:
        return await service.suggest_rules(household_id)
    except CategorizerError as e:
        raise http_error(e) from e


@router.post("/rules", response_model=Rule, status_code=201)
async def create_rule(
    req: RuleCreateRequest,
    service: Annotated[CategorizerService, Depends(get_service)],
) -> Rule:
    try:
        return service.catalog.create_rule(
            req.household_id,
            pattern=req.pattern,
            category=req.category,
            match_type=req.match_type,
            priority=req.priority,
            confidence=req.confidence,
            name=req.name,
        )
    except CategorizerError as e:
        raise http_error(e) from e


@router.patch("/rules/{rule_id}", response_model=Rule)
async def update_rule(
    rule_id: str,
    req: RuleUpdateRequest,
    service: Annotated[CategorizerService, Depends(get_service)],
) -> Rule:
    changes = req.model_dump(exclude={"household_id"}, exclude_none=True)
    try:
        return service.catalog.update_rule(req.household_id, rule_id, **changes)
    except CategorizerError as e:
        raise http_error(e) from e


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: str,
    household_id: Annotated[str, Query()],
    service: Annotated[CategorizerService, Depends(get_service)],
) -> None:
    try:
        service.catalog.delete_rule(household_id, rule_id)
    except CategorizerError as e:
        raise http_error(e) from e


@router.post("/seed", response_model=SeedResult)
async def seed_rules(
    service: Annotated[CategorizerService, Depends(get_service)],
) -> SeedResult:
    try:
        return service.seed()
    except CategorizerError as e:
        raise http_error(e) from e


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(
    service: Annotated[CategorizerService, Depends(get_service)],
    household_id: Annotated[str | None, Query()] = None,
) -> CacheClearResponse:
    try:
        return CacheClearResponse(removed=service.clear_cache(household_id))
    except CategorizerError as e:
        raise http_error(e) from e
