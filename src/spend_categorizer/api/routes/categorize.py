from typing import Annotated

from fastapi import APIRouter, Depends

from spend_categorizer.api.dependencies import get_service, http_error
from spend_categorizer.api.schemas import CategorizeRequest
from spend_categorizer.errors import CategorizerError
from spend_categorizer.manager import CategorizerService
from spend_categorizer.models import BatchOutcome, FeedbackOutcome, ManualCorrection

router = APIRouter(prefix="/api")


@router.post("/categorize", response_model=BatchOutcome)
async def categorize_batch(
    req: CategorizeRequest,
    service: Annotated[CategorizerService, Depends(get_service)],
) -> BatchOutcome:
    try:
        return await service.categorize(
            req.household_id,
            transaction_ids=req.transaction_ids,
            use_ai=req.use_ai,
        )
    except CategorizerError as e:
        raise http_error(e) from e


@router.post("/corrections", response_model=FeedbackOutcome)
async def record_correction(
    correction: ManualCorrection,
    service: Annotated[CategorizerService, Depends(get_service)],
) -> FeedbackOutcome:
    try:
        return await service.correct(correction)
    except CategorizerError as e:
        raise http_error(e) from e
