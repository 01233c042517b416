"""Language-model provider contract and the OpenAI-backed implementation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import openai

from app.core.config import settings
from app.services.transformer.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class LanguageModel:
    """Single call contract: (system prompt, user prompt, temperature, max tokens) -> raw text.

    Responses are untrusted and may be empty or malformed.
    """

    model_name: str = "unknown"

    @property
    def is_configured(self) -> bool:
        return True

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        raise NotImplementedError


class OpenAILanguageModel(LanguageModel):
    """Chat-completions client for OpenAI or any compatible endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str,
        base_url: Optional[str] = None,
        json_mode: bool = True,
        client: Optional[openai.AsyncOpenAI] = None,
    ) -> None:
        self.model_name = model
        self._json_mode = json_mode
        if client is not None:
            self._client: Optional[openai.AsyncOpenAI] = client
        elif api_key:
            self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        else:
            self._client = None

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        if self._client is None:
            raise ProviderUnavailableError()

        extra = {"response_format": {"type": "json_object"}} if self._json_mode else {}
        try:
            completion = await self._client.chat.completions.create(
                model=self.model_name,
                temperature=temperature,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                **extra,
            )
        except openai.OpenAIError as exc:
            logger.warning("Model call to %s failed: %s", self.model_name, exc)
            raise ProviderUnavailableError() from exc
        content = ""
        if completion.choices:
            content = (completion.choices[0].message.content or "").strip()
        usage = completion.usage
        return LLMResponse(
            text=content,
            model=completion.model or self.model_name,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )


def is_available(llm: Optional[LanguageModel]) -> bool:
    """Whether a provider is injected and has credentials."""
    return llm is not None and llm.is_configured


@lru_cache
def get_language_model() -> LanguageModel:
    """Build the process-wide model client from settings."""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY missing; transformer generation is disabled.")
    return OpenAILanguageModel(
        settings.openai_api_key,
        model=settings.transformer_model,
        base_url=settings.openai_base_url,
    )
