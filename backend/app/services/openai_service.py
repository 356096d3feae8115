from __future__ import annotations

import logging
from typing import Any

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)

from ..config import settings
from ..errors import GenerationError, GenerationErrorKind

logger = logging.getLogger(__name__)

_CREDENTIAL_HINTS = ("incorrect api key", "invalid api key", "invalid_api_key")
_RATE_LIMIT_HINTS = ("rate limit", "rate_limit", "too many requests")
_NETWORK_HINTS = ("network", "connection", "timed out", "timeout")


def classify_generation_failure(exc: BaseException) -> GenerationError:
    if isinstance(exc, GenerationError):
        return exc

    detail = " ".join(str(exc).split())[:300] or type(exc).__name__
    if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        return GenerationError(GenerationErrorKind.invalid_credential, detail)
    if isinstance(exc, RateLimitError):
        return GenerationError(GenerationErrorKind.rate_limit, detail)
    if isinstance(exc, (APIConnectionError, TimeoutError)):
        return GenerationError(GenerationErrorKind.network, detail)

    message = detail.lower()
    if any(hint in message for hint in _CREDENTIAL_HINTS):
        return GenerationError(GenerationErrorKind.invalid_credential, detail)
    if any(hint in message for hint in _RATE_LIMIT_HINTS):
        return GenerationError(GenerationErrorKind.rate_limit, detail)
    if any(hint in message for hint in _NETWORK_HINTS):
        return GenerationError(GenerationErrorKind.network, detail)
    return GenerationError(GenerationErrorKind.other, detail)


class OpenAIService:
    def __init__(self, api_key: str | None = None) -> None:
        self._client: AsyncOpenAI | None = None
        self._provider: str | None = None
        self._model: str | None = None

        openai_key = (api_key or "").strip() or settings.openai_api_key
        if openai_key:
            self._provider = "openai"
            self._model = settings.openai_model
            self._client = AsyncOpenAI(
                api_key=openai_key,
                organization=settings.openai_organization or None,
                project=settings.openai_project or None,
                timeout=settings.openai_timeout_seconds,
            )
            return

        if settings.groq_api_key:
            self._provider = "groq"
            configured_model = (settings.groq_model or "").strip()
            self._model = configured_model or "llama-3.1-8b-instant"
            self._client = AsyncOpenAI(
                api_key=settings.groq_api_key,
                base_url=settings.groq_base_url,
                timeout=settings.openai_timeout_seconds,
            )

    @property
    def provider(self) -> str | None:
        return self._provider

    @property
    def model(self) -> str | None:
        return self._model

    async def complete(
        self,
        system_instruction: str,
        user_instruction: str,
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        if self._client is None:
            raise GenerationError(
                GenerationErrorKind.invalid_credential,
                "Neither OPENAI_API_KEY nor GROQ_API_KEY is configured.",
            )

        messages = [
            {"role": "system", "content": system_instruction},
            {"role": "user", "content": user_instruction},
        ]
        try:
            try:
                response = await self._request(messages, temperature, max_output_tokens)
            except APITimeoutError:
                logger.info("Generation request timed out on %s; retrying once", self._provider)
                response = await self._request(messages, temperature, max_output_tokens)
        except Exception as exc:
            error = classify_generation_failure(exc)
            logger.warning(
                "Generation request failed on %s (%s): %s",
                self._provider,
                error.kind.value,
                error.detail,
            )
            raise error from exc
        return self._extract_text(response)

    async def _request(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_output_tokens: int,
    ) -> Any:
        return await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_output_tokens,
            top_p=1,
            frequency_penalty=0,
            presence_penalty=0,
        )

    @staticmethod
    def _extract_text(response: Any) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                text = item.get("text") if isinstance(item, dict) else getattr(item, "text", None)
                if isinstance(text, str):
                    parts.append(text)
            return "".join(parts)
        return ""
