import asyncio
import json
import os
import re

from openai import OpenAI, OpenAIError

from spend_categorizer.domain.categories import FIXED_CATEGORIES
from spend_categorizer.errors import AdapterError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import AIRequest, AIResponse

from .base import BatchClassifier, parse_response

logger = get_logger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")

CATEGORY_HINTS = {
    "food": "Alimentação (mercado, restaurante, delivery)",
    "transport": "Transporte (uber, gasolina, estacionamento)",
    "bills": "Contas Fixas (luz, água, internet, aluguel)",
    "health": "Saúde (farmácia, médico, academia)",
    "education": "Educação (escola, curso, livros)",
    "shopping": "Compras (roupas, eletrônicos, lojas)",
    "leisure": "Lazer (cinema, streaming, viagens)",
    "other": "Outros (quando não se encaixa em nenhuma)",
}


def build_prompt(request: AIRequest) -> str:
    categories = "\n".join(f"- {slug}: {CATEGORY_HINTS[slug]}" for slug in FIXED_CATEGORIES)
    lines = "\n".join(
        f"{index}. [ID: {item.id}] {item.description}"
        for index, item in enumerate(request.items, start=1)
    )
    return (
        "Categorize each of the following Brazilian bank statement descriptions "
        "into exactly ONE of these categories:\n"
        f"{categories}\n\n"
        "Transactions:\n"
        f"{lines}\n\n"
        "Answer ONLY with a JSON array in the format:\n"
        '[{"id": "<ID>", "category": "<slug>", "confidence": <0.0-1.0>}]'
    )


class LLMBatchClassifier(BatchClassifier):
    def __init__(self, api_key: str | None = None, model: str = "gpt-4o-mini", base_url: str | None = None):
        self.client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None
        )
        self.model = model

    async def classify_batch(self, request: AIRequest) -> AIResponse:
        if not request.items:
            return AIResponse()
        # The SDK client is synchronous.
        return await asyncio.to_thread(self._classify_sync, request)

    def _classify_sync(self, request: AIRequest) -> AIResponse:
        try:
            response = self.client.responses.create(
                model=self.model,
                instructions="You are an expert in categorizing personal expenses.",
                input=build_prompt(request),
                temperature=0.1,
            )
        except OpenAIError as e:
            raise AdapterError(f"LLM request failed: {e}") from e

        text = self._extract_output_text(response)
        if text is None:
            raise AdapterError("LLM returned an empty response")
        return self.parse_output(text)

    @staticmethod
    def parse_output(text: str) -> AIResponse:
        match = _JSON_ARRAY.search(text)
        if not match:
            raise AdapterError("LLM response did not contain a JSON array")
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise AdapterError(f"LLM response is not valid JSON: {e}") from e
        return parse_response(payload)

    @staticmethod
    def _extract_output_text(response: object) -> str | None:
        output_text = getattr(response, "output_text", None)
        if output_text:
            return output_text

        output = getattr(response, "output", None)
        if not output:
            return None

        parts: list[str] = []
        for item in output:
            for block in getattr(item, "content", None) or []:
                if getattr(block, "type", None) in {"output_text", "text"}:
                    text = getattr(block, "text", None)
                    if text:
                        parts.append(text)

        return "".join(parts) or None
