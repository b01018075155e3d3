"""Classification capability backed by OpenAI chat completions in JSON mode."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol

from openai import AsyncOpenAI

from config import require_openai_api_key, settings
from services.errors import ClassificationError

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    async def classify_json(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 200,
    ) -> Dict[str, Any]:
        ...


class OpenAIClassifier:
    """Returns the model's JSON object; never trusts it to match a schema."""

    def __init__(self, api_key: str, *, model: Optional[str] = None, timeout_seconds: Optional[float] = None):
        self._client = AsyncOpenAI(api_key=api_key)
        self.model = model or settings.RELEVANCY_MODEL
        self.timeout_seconds = float(timeout_seconds or settings.CLASSIFICATION_TIMEOUT_SECONDS)

    async def classify_json(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 200,
    ) -> Dict[str, Any]:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model or self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    response_format={"type": "json_object"},
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ClassificationError(f"Classification timed out after {self.timeout_seconds:.0f}s") from exc

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            raise ClassificationError("Classification returned an empty response")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ClassificationError(f"Classification returned invalid JSON: {content[:200]}") from exc
        if not isinstance(data, dict):
            raise ClassificationError("Classification returned a non-object JSON payload")
        return data

    async def aclose(self) -> None:
        await self._client.close()


def get_classifier() -> OpenAIClassifier:
    """Build the classifier from settings; raises ValueError when the key is missing."""
    return OpenAIClassifier(require_openai_api_key())
