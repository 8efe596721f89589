from abc import ABC, abstractmethod

from pydantic import ValidationError as PydanticValidationError

from spend_categorizer.errors import AdapterError
from spend_categorizer.models import AIRequest, AIResponse


class BatchClassifier(ABC):
    @abstractmethod
    async def classify_batch(self, request: AIRequest) -> AIResponse:
        """Categorize every item of the request in a single call.

        Raise ``AdapterError`` when the service is unreachable or the
        answer cannot be parsed.
        """
        pass

    async def aclose(self) -> None:
        pass


def parse_response(payload: object) -> AIResponse:
    """Accept ``{"categories": [...]}`` or a bare list of category objects."""
    if isinstance(payload, list):
        payload = {"categories": payload}
    if not isinstance(payload, dict):
        raise AdapterError(f"Unexpected classifier payload: {type(payload).__name__}")
    try:
        return AIResponse.model_validate(payload)
    except PydanticValidationError as e:
        raise AdapterError(f"Malformed classifier payload: {e}") from e
