# skillnorm/llm/client.py
import asyncio
import re
from dataclasses import dataclass
from typing import Type, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from skillnorm.core.config import settings
from skillnorm.core.errors import LLMResponseError
from skillnorm.core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?", re.I)


@dataclass
class Completion:
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


class LLMClient:
    """
    Thin async wrapper over the OpenAI chat API in JSON-object mode.

    A semaphore caps simultaneous in-flight requests across every caller
    sharing this client. Transient API errors are retried by the SDK
    (``max_retries``) and then propagate.
    """

    def __init__(
        self,
        api_key: str | None = None,
        max_concurrency: int | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self._client = client or AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY or None,
            timeout=timeout or settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=settings.OPENAI_MAX_RETRIES if max_retries is None else max_retries,
        )
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.LLM_MAX_CONCURRENCY)

    async def complete_json(
        self,
        model: str,
        system: str,
        user: str,
        max_tokens: int | None = None,
    ) -> Completion:
        kwargs = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "response_format": {"type": "json_object"},
        }
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        async with self._semaphore:
            resp = await self._client.chat.completions.create(**kwargs)

        content = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        usage = resp.usage
        return Completion(
            content=content,
            model=resp.model or model,
            prompt_tokens=(usage.prompt_tokens or 0) if usage else 0,
            completion_tokens=(usage.completion_tokens or 0) if usage else 0,
        )


def parse_json_response(content: str, schema: Type[T]) -> T:
    """Validate raw model output against ``schema``; markdown fences are tolerated."""
    cleaned = _FENCE_RE.sub("", content or "").strip()
    try:
        return schema.model_validate_json(cleaned)
    except ValidationError as e:
        raise LLMResponseError(f"{schema.__name__} validation failed: {e.error_count()} error(s)", raw=content or "") from e
