from __future__ import annotations

import sys
import unittest
from dataclasses import replace
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
from openai import APIConnectionError, APITimeoutError, AuthenticationError, RateLimitError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.config import settings
from app.errors import GenerationError, GenerationErrorKind
from app.services.openai_service import OpenAIService, classify_generation_failure

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls, status_code: int, message: str):
    return cls(message, response=httpx.Response(status_code, request=_REQUEST), body=None)


def _response(content) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _settings(**overrides):
    return patch("app.services.openai_service.settings", replace(settings, **overrides))


class ClassifyFailureTestCase(unittest.TestCase):
    def test_typed_client_errors(self) -> None:
        cases = [
            (_status_error(AuthenticationError, 401, "Incorrect API key provided"), GenerationErrorKind.invalid_credential),
            (_status_error(RateLimitError, 429, "Slow down"), GenerationErrorKind.rate_limit),
            (APIConnectionError(request=_REQUEST), GenerationErrorKind.network),
            (APITimeoutError(request=_REQUEST), GenerationErrorKind.network),
            (TimeoutError(), GenerationErrorKind.network),
        ]
        for exc, kind in cases:
            self.assertEqual(classify_generation_failure(exc).kind, kind, msg=type(exc).__name__)

    def test_message_hints_and_default(self) -> None:
        self.assertEqual(
            classify_generation_failure(RuntimeError("429 Too Many Requests")).kind,
            GenerationErrorKind.rate_limit,
        )
        self.assertEqual(
            classify_generation_failure(RuntimeError("invalid_api_key")).kind,
            GenerationErrorKind.invalid_credential,
        )
        self.assertEqual(
            classify_generation_failure(OSError("Network is unreachable")).kind,
            GenerationErrorKind.network,
        )
        other = classify_generation_failure(ValueError("boom"))
        self.assertEqual(other.kind, GenerationErrorKind.other)
        self.assertEqual(other.detail, "boom")

    def test_generation_errors_pass_through(self) -> None:
        error = GenerationError(GenerationErrorKind.rate_limit, "x")
        self.assertIs(classify_generation_failure(error), error)
        self.assertEqual(error.user_message, "Rate limit exceeded. Please try again later.")


class ProviderSelectionTestCase(unittest.TestCase):
    def test_request_key_takes_precedence(self) -> None:
        with _settings(openai_api_key=None, groq_api_key="gsk-test"):
            service = OpenAIService(api_key="sk-user")
        self.assertEqual(service.provider, "openai")
        self.assertEqual(service.model, settings.openai_model)

    def test_groq_is_used_without_openai_key(self) -> None:
        with _settings(openai_api_key=None, groq_api_key="gsk-test", groq_model=""):
            service = OpenAIService(api_key="   ")
        self.assertEqual(service.provider, "groq")
        self.assertEqual(service.model, "llama-3.1-8b-instant")

    def test_no_credentials_means_no_provider(self) -> None:
        with _settings(openai_api_key=None, groq_api_key=None):
            service = OpenAIService()
        self.assertIsNone(service.provider)
        self.assertIsNone(service.model)


class CompleteTestCase(unittest.IsolatedAsyncioTestCase):
    def _service(self) -> OpenAIService:
        with _settings(openai_api_key="sk-test"):
            return OpenAIService()

    async def test_missing_credentials_fail_as_invalid_credential(self) -> None:
        with _settings(openai_api_key=None, groq_api_key=None):
            service = OpenAIService()
        with self.assertRaises(GenerationError) as ctx:
            await service.complete("system", "user", 0.5, 4096)
        self.assertEqual(ctx.exception.kind, GenerationErrorKind.invalid_credential)

    async def test_returns_message_content(self) -> None:
        service = self._service()
        with patch.object(service, "_request", AsyncMock(return_value=_response("[]"))) as request:
            self.assertEqual(await service.complete("system", "user", 0.6, 4096), "[]")
        messages, temperature, max_tokens = request.await_args.args
        self.assertEqual([message["role"] for message in messages], ["system", "user"])
        self.assertEqual((temperature, max_tokens), (0.6, 4096))

    async def test_timeout_is_retried_once(self) -> None:
        service = self._service()
        request = AsyncMock(side_effect=[APITimeoutError(request=_REQUEST), _response("ok")])
        with patch.object(service, "_request", request):
            self.assertEqual(await service.complete("system", "user", 0.5, 4096), "ok")
        self.assertEqual(request.await_count, 2)

    async def test_second_timeout_is_a_network_failure(self) -> None:
        service = self._service()
        request = AsyncMock(side_effect=[APITimeoutError(request=_REQUEST), APITimeoutError(request=_REQUEST)])
        with patch.object(service, "_request", request):
            with self.assertRaises(GenerationError) as ctx:
                await service.complete("system", "user", 0.5, 4096)
        self.assertEqual(ctx.exception.kind, GenerationErrorKind.network)

    async def test_rate_limit_is_classified(self) -> None:
        service = self._service()
        request = AsyncMock(side_effect=_status_error(RateLimitError, 429, "Rate limit reached"))
        with patch.object(service, "_request", request):
            with self.assertRaises(GenerationError) as ctx:
                await service.complete("system", "user", 0.5, 4096)
        self.assertEqual(ctx.exception.kind, GenerationErrorKind.rate_limit)
        self.assertEqual(request.await_count, 1)


class ExtractTextTestCase(unittest.TestCase):
    def test_content_shapes(self) -> None:
        self.assertEqual(OpenAIService._extract_text(_response("hello")), "hello")
        self.assertEqual(
            OpenAIService._extract_text(_response([{"text": "a"}, SimpleNamespace(text="b"), {"type": "image"}])),
            "ab",
        )
        self.assertEqual(OpenAIService._extract_text(_response(None)), "")
        self.assertEqual(OpenAIService._extract_text(SimpleNamespace(choices=[])), "")


if __name__ == "__main__":
    unittest.main()
