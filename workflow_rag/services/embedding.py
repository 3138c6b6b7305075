"""Embedding generation with ordered provider fallback."""

import logging
import math
from numbers import Real
from typing import List, Optional, Sequence

from workflow_rag.core.config import Settings, settings as default_settings
from workflow_rag.core.exceptions import EmbeddingError, ProviderError
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


class EmbeddingProvider(Provider):
    """Provider strategy exposing the ``embed`` capability."""

    async def embed(self, texts: List[str], model: str) -> List[List[float]]:
        """
        Embed texts with this provider's OpenAI-compatible endpoint.

        Args:
            texts: Texts to embed.
            model: Configured model identifier (resolved per provider).

        Returns:
            One vector per text, in order.
        """
        response = await self.client.embeddings.create(
            model=self.resolve_model(model),
            input=texts,
        )
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]


class OpenAIEmbeddingProvider(OpenAIModelsMixin, EmbeddingProvider):
    name = "openai"


class OpenRouterEmbeddingProvider(OpenRouterModelsMixin, EmbeddingProvider):
    name = "openrouter"


class OllamaEmbeddingProvider(OllamaModelsMixin, EmbeddingProvider):
    name = "ollama"


def build_embedding_providers(settings: Settings) -> List[EmbeddingProvider]:
    """
    Create embedding providers in priority order.

    Providers without credentials are still returned, unconfigured, so the
    gateway can report what was skipped.
    """
    present = settings.configured_credentials()
    providers: List[EmbeddingProvider] = [
        OpenAIEmbeddingProvider(
            create_openai_client(settings) if "openai" in present else None),
        OpenRouterEmbeddingProvider(
            create_openrouter_client(settings) if "openrouter" in present else None),
        OllamaEmbeddingProvider(
            create_ollama_client(settings) if "ollama" in present else None),
    ]
    if settings.use_openrouter_for_embeddings and "openrouter" in present:
        providers.sort(key=lambda p: p.name != "openrouter")
    return providers


def validate_embeddings(provider: str, vectors: Sequence, expected: int) -> List[List[float]]:
    """
    Check a provider response is one uniform numeric vector per input.

    Raises:
        ProviderError: If the response is malformed.
    """
    if len(vectors) != expected:
        raise ProviderError(
            provider, f"expected {expected} embeddings, got {len(vectors)}")

    dimensions = None
    result = []
    for vector in vectors:
        if not vector:
            raise ProviderError(provider, "empty embedding vector")
        if dimensions is None:
            dimensions = len(vector)
        elif len(vector) != dimensions:
            raise ProviderError(
                provider, f"inconsistent embedding dimensions ({dimensions} vs {len(vector)})")
        if not all(isinstance(v, Real) and not isinstance(v, bool) and math.isfinite(v)
                   for v in vector):
            raise ProviderError(provider, "embedding contains non-numeric values")
        result.append([float(v) for v in vector])
    return result


class EmbeddingGateway:
    """Converts text to vectors, trying providers in priority order."""

    def __init__(
        self,
        providers: Sequence[EmbeddingProvider],
        model: Optional[str] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            providers: Candidate providers in priority order.
            model: Embedding model identifier.

        Raises:
            ConfigurationError: If no provider is both configured and
                compatible with ``model``.
        """
        self.model = model or default_settings.embedding_model
        self.providers = select_providers(providers, self.model, "embedding")
        logger.info(
            f"Embedding providers for {self.model}: "
            f"{', '.join(p.name for p in self.providers)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingGateway":
        return cls(build_embedding_providers(settings), settings.embedding_model)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors, same order as ``texts``.

        Raises:
            EmbeddingError: If every provider fails.
        """
        texts = list(texts)
        if not texts:
            return []

        async def attempt(provider: EmbeddingProvider) -> List[List[float]]:
            vectors = await provider.embed(texts, self.model)
            return validate_embeddings(provider.name, vectors, len(texts))

        return await call_with_fallback(self.providers, attempt, "embedding", EmbeddingError)

    async def embed_one(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.
        """
        embeddings = await self.embed([text])
        return embeddings[0]
