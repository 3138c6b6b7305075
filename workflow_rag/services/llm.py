"""LLM response generation with ordered provider fallback."""

import logging
import re
from typing import Dict, List, Optional, Sequence

import openai

from workflow_rag.core.config import Settings, settings as default_settings
from workflow_rag.core.exceptions import LLMError, ProviderQuotaError, error_message
from workflow_rag.monitoring.metrics import max_tokens_clamped_total
from workflow_rag.services.providers import (
    OllamaModelsMixin,
    OpenAIModelsMixin,
    OpenRouterModelsMixin,
    Provider,
    call_with_fallback,
    create_ollama_client,
    create_openai_client,
    create_openrouter_client,
    select_providers,
)

logger = logging.getLogger(__name__)

MIN_OUTPUT_TOKENS = 50
QUOTA_PATTERN = re.compile(
    r"\b402\b|insufficient[_ ]quota|exceeded your current quota|\bcredits?\b|can(?:not| only) afford",
    re.IGNORECASE)
AFFORDABLE_TOKENS = re.compile(r"can only afford (\d+)", re.IGNORECASE)
EMPTY_COMPLETION = "No response generated"

Message = Dict[str, str]


def clamp_max_tokens(requested: int, ceiling: int, provider: str = "", floor: int = MIN_OUTPUT_TOKENS) -> int:
    """
    Clamp a requested completion budget into ``[floor, ceiling]``.

    Exceeding the ceiling is not an error but is logged and counted.
    """
    if requested > ceiling:
        logger.warning(
            f"max_tokens ({requested}) exceeds the {provider or 'provider'} limit ({ceiling}). "
            f"Using {ceiling}.")
        max_tokens_clamped_total.labels(provider=provider or "unknown").inc()
        return ceiling
    return max(requested, floor)


def is_quota_error(error: Exception) -> bool:
    """Whether a provider failure is a credit or quota rejection."""
    if isinstance(error, openai.APIStatusError):
        if error.status_code == 402 or error.code == "insufficient_quota":
            return True
    return QUOTA_PATTERN.search(error_message(error)) is not None


def quota_error(provider: str, error: Exception, max_tokens: int) -> Optional[ProviderQuotaError]:
    """
    Turn a credit/quota failure into a ProviderQuotaError with a token suggestion.

    Returns:
        The quota error, or None if ``error`` is not quota related.
    """
    if not is_quota_error(error):
        return None

    message = error_message(error)

    match = AFFORDABLE_TOKENS.search(message)
    if match:
        affordable = int(match.group(1))
        suggested = affordable * 7 // 10
        suggestion = (
            f"You can afford {affordable} total tokens. "
            f"Set MAX_TOKENS={suggested} (or lower like {max(suggested - 50, MIN_OUTPUT_TOKENS)}) "
            "to account for input tokens.")
    else:
        affordable = suggested = None
        suggestion = (
            f"Reduce MAX_TOKENS (currently {max_tokens}) or add credits with the provider.")

    return ProviderQuotaError(
        provider,
        f"{provider} credit limit exceeded. {suggestion} Original error: {message}",
        affordable_tokens=affordable,
        suggested_max_tokens=suggested,
    )


def build_messages(system_prompt: str, history: Sequence[Message], user_prompt: str) -> List[Message]:
    """Role-tagged message list: system, prior turns, then the prompt."""
    messages = [{"role": "system", "content": system_prompt}]
    for msg in history:
        role = "user" if msg["role"] == "user" else "assistant"
        messages.append({"role": role, "content": msg["content"]})
    messages.append({"role": "user", "content": user_prompt})
    return messages


def flatten_prompt(system_prompt: str, history: Sequence[Message], user_prompt: str) -> str:
    """Single prompt string with ``User:``/``Assistant:`` markers for models without a system role."""
    parts = [system_prompt.strip(), ""]
    for msg in history:
        speaker = "User" if msg["role"] == "user" else "Assistant"
        parts.append(f"{speaker}: {msg['content']}")
    parts.append(f"User: {user_prompt}")
    parts.append("Assistant:")
    return "\n".join(parts)


class GenerationProvider(Provider):
    """Provider strategy exposing the ``complete`` capability."""

    max_output_tokens = 4096

    def __init__(self, client=None, temperature: float = 0.7) -> None:
        super().__init__(client)
        self.temperature = temperature

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[Message],
        user_prompt: str,
        max_tokens: int,
        model: str,
    ) -> str:
        """
        Generate a completion.

        Args:
            system_prompt: Instructions for the model.
            history: Prior turns as ``{"role", "content"}`` dicts.
            user_prompt: The prompt for this turn.
            max_tokens: Requested budget; clamped to this provider's ceiling.
            model: Configured model identifier.

        Returns:
            Completion text.

        Raises:
            ProviderQuotaError: On a credit or quota failure.
        """
        budget = clamp_max_tokens(max_tokens, self.max_output_tokens, self.name)
        try:
            return await self._complete(system_prompt, history, user_prompt, budget, model)
        except Exception as e:
            quota = quota_error(self.name, e, budget)
            if quota is not None:
                raise quota from e
            raise

    async def _complete(self, system_prompt, history, user_prompt, max_tokens, model) -> str:
        response = await self.client.chat.completions.create(
            model=self.resolve_model(model),
            messages=build_messages(system_prompt, history, user_prompt),
            temperature=self.temperature,
            max_tokens=max_tokens,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class OpenAIChatProvider(OpenAIModelsMixin, GenerationProvider):
    name = "openai"
    max_output_tokens = 4096


class OpenRouterChatProvider(OpenRouterModelsMixin, GenerationProvider):
    name = "openrouter"
    max_output_tokens = 3000


class OllamaCompletionProvider(OllamaModelsMixin, GenerationProvider):
    """Plain text completion; the whole conversation goes into one prompt."""

    name = "ollama"
    max_output_tokens = 2048

    async def _complete(self, system_prompt, history, user_prompt, max_tokens, model) -> str:
        response = await self.client.completions.create(
            model=self.resolve_model(model),
            prompt=flatten_prompt(system_prompt, history, user_prompt),
            temperature=self.temperature,
            max_tokens=max_tokens,
            stop=["\nUser:"],
        )
        if not response.choices:
            return ""
        return (response.choices[0].text or "").strip()


def build_generation_providers(settings: Settings) -> List[GenerationProvider]:
    """Create generation providers in priority order."""
    present = settings.configured_credentials()
    return [
        OpenAIChatProvider(
            create_openai_client(settings) if "openai" in present else None,
            temperature=settings.temperature),
        OpenRouterChatProvider(
            create_openrouter_client(settings) if "openrouter" in present else None,
            temperature=settings.temperature),
        OllamaCompletionProvider(
            create_ollama_client(settings) if "ollama" in present else None,
            temperature=settings.temperature),
    ]


class GenerationGateway:
    """Produces completions, trying providers in priority order."""

    def __init__(
        self,
        providers: Sequence[GenerationProvider],
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            providers: Candidate providers in priority order.
            model: Chat model identifier.
            max_tokens: Default completion budget.

        Raises:
            ConfigurationError: If no provider is both configured and
                compatible with ``model``.
        """
        self.model = model or default_settings.chat_model
        self.max_tokens = max_tokens or default_settings.max_tokens
        self.providers = select_providers(providers, self.model, "generation")
        logger.info(
            f"Generation providers for {self.model}: "
            f"{', '.join(p.name for p in self.providers)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationGateway":
        return cls(build_generation_providers(settings), settings.chat_model, settings.max_tokens)

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[Message],
        user_prompt: str,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate a completion with fallback.

        Args:
            system_prompt: Instructions for the model.
            history: Prior turns as ``{"role", "content"}`` dicts.
            user_prompt: The prompt for this turn.
            max_tokens: Completion budget; defaults to the configured value.

        Returns:
            Completion text, or a placeholder when the model returned nothing.

        Raises:
            LLMError: If every provider fails.
        """
        budget = max_tokens or self.max_tokens
        history = list(history)

        async def attempt(provider: GenerationProvider) -> str:
            return await provider.complete(system_prompt, history, user_prompt, budget, self.model)

        text = await call_with_fallback(self.providers, attempt, "generation", LLMError)
        return text or EMPTY_COMPLETION
