"""Shared plumbing for model providers.

Every provider is an OpenAI-compatible endpoint reached through
``AsyncOpenAI``; they differ in base URL, credentials and which model names
they accept.
"""

import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Type, TypeVar

from openai import AsyncOpenAI

from workflow_rag.core.config import Settings
from workflow_rag.core.exceptions import ConfigurationError, error_message
from workflow_rag.monitoring.metrics import provider_failures_total

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P", bound="Provider")

OPENAI_MODEL_PREFIXES = (
    "gpt-", "text-embedding", "chatgpt", "o1", "o3", "o4", "davinci", "babbage")


def is_openai_model(model: str) -> bool:
    """Whether a bare model name belongs to the OpenAI catalogue."""
    return model.lower().startswith(OPENAI_MODEL_PREFIXES)


def split_vendor(model: str) -> Tuple[Optional[str], str]:
    """Split ``vendor/name`` into its parts; bare names have no vendor."""
    if "/" in model:
        vendor, name = model.split("/", 1)
        return vendor.lower(), name
    return None, model


def create_openai_client(settings: Settings) -> AsyncOpenAI:
    """Client for the OpenAI API. Fallback replaces SDK retries."""
    return AsyncOpenAI(api_key=settings.openai_api_key.strip(), max_retries=0)


def create_openrouter_client(settings: Settings) -> AsyncOpenAI:
    """Client for OpenRouter's OpenAI-compatible API."""
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key.strip(),
        base_url=settings.openrouter_base_url,
        default_headers={
            "HTTP-Referer": settings.openrouter_http_referer,
            "X-Title": settings.openrouter_app_title,
        },
        max_retries=0,
    )


def create_ollama_client(settings: Settings) -> AsyncOpenAI:
    """Client for a local Ollama server's OpenAI-compatible API."""
    base_url = settings.ollama_base_url.strip().rstrip("/")
    if not base_url.endswith("/v1"):
        base_url = f"{base_url}/v1"
    # Ollama ignores the key but the SDK requires one
    return AsyncOpenAI(api_key="ollama", base_url=base_url, max_retries=0)


class Provider:
    """Common behaviour of a provider strategy."""

    name = "provider"

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        self.client = client

    def is_configured(self) -> bool:
        """Whether the provider's credential is present."""
        return self.client is not None

    def supports_model(self, model: str) -> bool:
        """Whether the provider can serve ``model``."""
        return True

    def resolve_model(self, model: str) -> str:
        """Model identifier in the form the provider expects."""
        return model

    async def close(self) -> None:
        """Release the client's connection pool."""
        if self.client is not None:
            await self.client.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class OpenAIModelsMixin:
    """OpenAI serves its own bare model names, optionally ``openai/`` prefixed."""

    def supports_model(self, model: str) -> bool:
        vendor, name = split_vendor(model)
        return vendor in (None, "openai") and is_openai_model(name)

    def resolve_model(self, model: str) -> str:
        return split_vendor(model)[1]


class OpenRouterModelsMixin:
    """OpenRouter serves vendor-qualified names; bare OpenAI names get ``openai/``."""

    def supports_model(self, model: str) -> bool:
        vendor, name = split_vendor(model)
        if vendor == "ollama":
            return False
        return vendor is not None or is_openai_model(name)

    def resolve_model(self, model: str) -> str:
        if "/" in model:
            return model
        return f"openai/{model}"


class OllamaModelsMixin:
    """Ollama serves locally pulled models, never OpenAI-hosted ones."""

    def supports_model(self, model: str) -> bool:
        vendor, name = split_vendor(model)
        return vendor in (None, "ollama") and not is_openai_model(name)

    def resolve_model(self, model: str) -> str:
        return split_vendor(model)[1]


def select_providers(
    providers: Sequence[P], model: str, capability: str
) -> List[P]:
    """
    Keep the providers that are configured and accept ``model``.

    Args:
        providers: Candidates in priority order.
        model: Configured model identifier.
        capability: ``embedding`` or ``generation``, for messages.

    Returns:
        Eligible providers, priority order preserved.

    Raises:
        ConfigurationError: If no provider is eligible.
    """
    configured = [p for p in providers if p.is_configured()]
    if not configured:
        raise ConfigurationError(
            f"No {capability} provider configured. Set OPENAI_API_KEY, "
            "OPENROUTER_API_KEY or OLLAMA_BASE_URL.")

    eligible = []
    for provider in configured:
        if provider.supports_model(model):
            eligible.append(provider)
        else:
            logger.info(
                f"Skipping {provider.name} for {capability}: model {model!r} not supported")

    if not eligible:
        names = ", ".join(p.name for p in configured)
        raise ConfigurationError(
            f"Model {model!r} is not supported by any configured {capability} "
            f"provider ({names})")
    return eligible


async def call_with_fallback(
    providers: Sequence[P],
    call: Callable[[P], Awaitable[T]],
    capability: str,
    error_cls: Type[Exception],
) -> T:
    """
    Call providers in order until one succeeds.

    Args:
        providers: Eligible providers in priority order.
        call: Coroutine factory invoked with each provider.
        capability: ``embedding`` or ``generation``, for logs and metrics.
        error_cls: Composite error raised when every provider fails.

    Returns:
        Result of the first successful call.

    Raises:
        error_cls: Naming the failure reason of every provider.
    """
    failures: List[Tuple[str, str]] = []

    for provider in providers:
        try:
            result = await call(provider)
        except Exception as e:
            reason = error_message(e)
            failures.append((provider.name, reason))
            provider_failures_total.labels(
                capability=capability, provider=provider.name).inc()
            if len(failures) < len(providers):
                logger.warning(
                    f"{provider.name} {capability} failed ({reason}), trying next provider...")
            else:
                logger.error(f"{provider.name} {capability} failed: {reason}")
            continue

        if failures:
            logger.info(
                f"Using {provider.name} for {capability} after "
                f"{', '.join(name for name, _ in failures)} failed")
        return result

    raise error_cls(failures)

