import asyncio
import os

import httpx

from spend_categorizer.errors import AdapterError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import AIRequest, AIResponse

from .base import BatchClassifier, parse_response

logger = get_logger(__name__)


class RemoteBatchClassifier(BatchClassifier):
    """Posts ``{"items": [...]}`` to a categorization endpoint and reads back
    ``{"categories": [...]}``."""

    def __init__(
        self,
        endpoint_url: str | None = None,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.endpoint_url = endpoint_url or os.getenv("AI_ENDPOINT_URL")
        self.token = token or os.getenv("AI_ENDPOINT_TOKEN")
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"
        self.timeout = timeout
        self._client = client
        self._client_lock = asyncio.Lock()

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        client = self._client
        if client is not None and not client.is_closed:
            return client

        async with self._client_lock:
            client = self._client
            if client is None or client.is_closed:
                client = httpx.AsyncClient()
                self._client = client
            return client

    async def classify_batch(self, request: AIRequest) -> AIResponse:
        if not self.endpoint_url:
            raise AdapterError("AI_ENDPOINT_URL is not configured")
        if not request.items:
            return AIResponse()

        client = await self._get_client()
        try:
            response = await client.post(
                self.endpoint_url,
                headers=self.headers,
                json=request.model_dump(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise AdapterError(
                f"Classifier endpoint answered {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise AdapterError(f"Classifier endpoint unreachable: {e}") from e
        except ValueError as e:
            raise AdapterError("Classifier endpoint returned invalid JSON") from e

        result = parse_response(payload)
        logger.debug("[AI] Endpoint returned %d of %d items", len(result.categories), len(request.items))
        return result
