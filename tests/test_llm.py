"""Tests for the generation gateway and its providers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from workflow_rag.core.exceptions import ConfigurationError, LLMError, ProviderQuotaError
from workflow_rag.services.llm import (
    EMPTY_COMPLETION,
    GenerationGateway,
    OllamaCompletionProvider,
    OpenAIChatProvider,
    OpenRouterChatProvider,
    build_generation_providers,
    build_messages,
    clamp_max_tokens,
    flatten_prompt,
    is_quota_error,
    quota_error,
)
from tests.conftest import FakeGenerationProvider

HISTORY = [
    {"role": "user", "content": "What is a leaf?"},
    {"role": "assistant", "content": "A plant organ."},
]


def _chat_client(content="Answer") -> MagicMock:
    client = MagicMock()
    message = SimpleNamespace(content=content)
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    return client


def _response(status_code: int) -> httpx.Response:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return httpx.Response(status_code, request=request)


def _completion_client(text=" Answer ") -> MagicMock:
    client = MagicMock()
    client.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(text=text)]))
    return client


class TestClampMaxTokens:

    def test_within_range_is_unchanged(self):
        assert clamp_max_tokens(1000, 4096) == 1000

    def test_above_ceiling_is_clamped(self, caplog):
        assert clamp_max_tokens(8000, 3000, "openrouter") == 3000
        assert "exceeds the openrouter limit" in caplog.text

    def test_below_floor_is_raised(self):
        assert clamp_max_tokens(10, 4096) == 50


class TestQuotaError:

    def test_affordable_tokens_produce_suggestion(self):
        error = RuntimeError("Error code: 402 - This request requires more credits, "
                             "or fewer max_tokens. You requested up to 4096 tokens, "
                             "but can only afford 1000.")

        quota = quota_error("openrouter", error, 4096)

        assert isinstance(quota, ProviderQuotaError)
        assert quota.affordable_tokens == 1000
        assert quota.suggested_max_tokens == 700
        assert "MAX_TOKENS=700" in str(quota)
        assert "can only afford 1000" in str(quota)

    def test_quota_without_number_gives_generic_hint(self):
        quota = quota_error("openai", RuntimeError("You exceeded your current quota"), 900)

        assert quota.suggested_max_tokens is None
        assert "currently 900" in str(quota)

    def test_other_errors_are_not_quota(self):
        assert quota_error("openai", RuntimeError("connection refused"), 900) is None

    def test_digits_inside_request_id_are_not_a_402(self):
        error = RuntimeError("Error code: 400 - invalid request (request id req_84021)")

        assert not is_quota_error(error)
        assert quota_error("openai", error, 1024) is None

    def test_insufficient_permissions_is_not_quota(self):
        error = RuntimeError("Error code: 403 - insufficient permissions for this model")

        assert quota_error("openai", error, 1024) is None

    def test_payment_required_status(self):
        error = openai.APIStatusError(
            "Payment required", response=_response(402), body={"message": "Payment required"})

        assert is_quota_error(error)

    def test_insufficient_quota_code(self):
        error = openai.APIStatusError(
            "Rate limited", response=_response(429),
            body={"code": "insufficient_quota", "message": "Rate limited"})

        quota = quota_error("openai", error, 1024)

        assert isinstance(quota, ProviderQuotaError)
        assert "currently 1024" in str(quota)

    def test_other_status_errors_are_not_quota(self):
        error = openai.APIStatusError(
            "Bad request", response=_response(400), body={"code": "invalid_request_error"})

        assert not is_quota_error(error)


class TestMessageFormats:

    def test_chat_messages_are_role_tagged(self):
        messages = build_messages("sys", HISTORY, "prompt")

        assert messages == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "What is a leaf?"},
            {"role": "assistant", "content": "A plant organ."},
            {"role": "user", "content": "prompt"},
        ]

    def test_flattened_prompt_uses_speaker_markers(self):
        prompt = flatten_prompt("Be helpful.", HISTORY, "What is a root?")

        assert prompt == (
            "Be helpful.\n\n"
            "User: What is a leaf?\n"
            "Assistant: A plant organ.\n"
            "User: What is a root?\n"
            "Assistant:"
        )


class TestProviders:

    async def test_openai_sends_message_list(self):
        client = _chat_client("Leaves photosynthesise.")
        provider = OpenAIChatProvider(client, temperature=0.2)

        text = await provider.complete("sys", HISTORY, "prompt", 10_000, "gpt-4o-mini")

        assert text == "Leaves photosynthesise."
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 4096
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}

    async def test_openrouter_prefixes_model_and_has_lower_ceiling(self):
        client = _chat_client()
        provider = OpenRouterChatProvider(client)

        await provider.complete("sys", [], "prompt", 4096, "gpt-3.5-turbo")

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "openai/gpt-3.5-turbo"
        assert kwargs["max_tokens"] == 3000

    async def test_ollama_flattens_into_single_prompt(self):
        client = _completion_client(" Roots absorb water. ")
        provider = OllamaCompletionProvider(client)

        text = await provider.complete("sys", HISTORY, "prompt", 512, "llama3.1")

        assert text == "Roots absorb water."
        kwargs = client.completions.create.await_args.kwargs
        assert kwargs["model"] == "llama3.1"
        assert kwargs["prompt"].endswith("User: prompt\nAssistant:")
        assert "messages" not in kwargs

    async def test_quota_failure_raises_quota_error(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=RuntimeError("402 Payment Required: can only afford 500"))
        provider = OpenRouterChatProvider(client)

        with pytest.raises(ProviderQuotaError) as exc_info:
            await provider.complete("sys", [], "prompt", 1000, "gpt-3.5-turbo")

        assert exc_info.value.suggested_max_tokens == 350


class TestGenerationGateway:

    async def test_first_provider_answers(self, generation_provider):
        gateway = GenerationGateway([generation_provider], model="gpt-4o-mini", max_tokens=256)

        text = await gateway.complete("sys", HISTORY, "prompt")

        assert text == "Generated answer"
        assert generation_provider.calls[0]["max_tokens"] == 256
        assert generation_provider.calls[0]["history"] == HISTORY

    async def test_fallback_to_second_provider(self):
        first = FakeGenerationProvider("first", fail_with=RuntimeError("401 Unauthorized"))
        second = FakeGenerationProvider("second", answer="from second")
        gateway = GenerationGateway([first, second], model="gpt-4o-mini")

        assert await gateway.complete("sys", [], "prompt") == "from second"
        assert len(first.calls) == 1

    async def test_all_fail_with_composite_error(self):
        first = FakeGenerationProvider("first", fail_with=RuntimeError("401 Unauthorized"))
        second = FakeGenerationProvider(
            "second", fail_with=RuntimeError("402 credits: can only afford 200"))
        gateway = GenerationGateway([first, second], model="gpt-4o-mini")

        with pytest.raises(LLMError) as exc_info:
            await gateway.complete("sys", [], "prompt")

        message = str(exc_info.value)
        assert "first error: 401 Unauthorized" in message
        assert "second error: second credit limit exceeded" in message
        assert "MAX_TOKENS=140" in message

    async def test_empty_completion_gets_placeholder(self):
        provider = FakeGenerationProvider(answer="")
        gateway = GenerationGateway([provider], model="gpt-4o-mini")

        assert await gateway.complete("sys", [], "prompt") == EMPTY_COMPLETION

    def test_no_credentials_fail_fast(self, test_settings):
        with pytest.raises(ConfigurationError):
            GenerationGateway.from_settings(test_settings)

    def test_provider_order_from_settings(self, test_settings):
        test_settings.openai_api_key = "sk-test"
        test_settings.ollama_base_url = "http://localhost:11434"

        providers = build_generation_providers(test_settings)

        assert [p.name for p in providers] == ["openai", "openrouter", "ollama"]
        assert [p.is_configured() for p in providers] == [True, False, True]
        assert str(providers[2].client.base_url).rstrip("/") == "http://localhost:11434/v1"

    def test_model_selects_compatible_providers(self):
        openai = OpenAIChatProvider(_chat_client())
        ollama = OllamaCompletionProvider(_completion_client())

        gateway = GenerationGateway([openai, ollama], model="llama3.1")

        assert [p.name for p in gateway.providers] == ["ollama"]
