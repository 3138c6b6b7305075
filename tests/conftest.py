"""
Shared test fixtures.

Provides: fake embedding/generation providers, settings, wired services
System role: Test infrastructure; no network access is needed
"""

from typing import Dict, List, Optional

import pytest

from workflow_rag.core.config import Settings
from workflow_rag.core.dependencies import ServiceContainer
from workflow_rag.services.embedding import EmbeddingGateway, EmbeddingProvider
from workflow_rag.services.llm import GenerationGateway, GenerationProvider

DIMENSIONS = 16


def bag_of_words_vector(text: str, dimensions: int = DIMENSIONS) -> List[float]:
    """Deterministic embedding: word counts bucketed by character sum, plus a bias term."""
    vector = [0.0] * dimensions
    vector[0] = 0.1
    for word in text.lower().split():
        word = word.strip(".,!?")
        if word:
            vector[1 + sum(ord(c) for c in word) % (dimensions - 1)] += 1.0
    return vector


class FakeEmbeddingProvider(EmbeddingProvider):
    """Embedding provider that never touches the network."""

    def __init__(self, name: str = "fake", fail_with: Optional[Exception] = None,
                 configured: bool = True, vectors: Optional[List[List[float]]] = None,
                 lookup: Optional[Dict[str, List[float]]] = None) -> None:
        super().__init__(client=None)
        self.name = name
        self.fail_with = fail_with
        self.configured = configured
        self.vectors = vectors
        self.lookup = lookup or {}
        self.calls: List[List[str]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def embed(self, texts, model):
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        if self.vectors is not None:
            return self.vectors
        return [self.lookup.get(text) or bag_of_words_vector(text) for text in texts]


class FakeGenerationProvider(GenerationProvider):
    """Generation provider returning a canned answer."""

    max_output_tokens = 4096

    def __init__(self, name: str = "fake-llm", answer: str = "Generated answer",
                 fail_with: Optional[Exception] = None, configured: bool = True) -> None:
        super().__init__(client=None)
        self.name = name
        self.answer = answer
        self.fail_with = fail_with
        self.configured = configured
        self.calls: List[dict] = []

    def is_configured(self) -> bool:
        return self.configured

    async def _complete(self, system_prompt, history, user_prompt, max_tokens, model):
        self.calls.append({
            "system_prompt": system_prompt,
            "history": list(history),
            "user_prompt": user_prompt,
            "max_tokens": max_tokens,
            "model": model,
        })
        if self.fail_with is not None:
            raise self.fail_with
        return self.answer


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        openai_api_key=None,
        openrouter_api_key=None,
        ollama_base_url=None,
        chunk_size=200,
        chunk_overlap=30,
        max_context_chunks=5,
        max_total_context_chunks=3,
        max_history_messages=5,
    )


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def generation_provider() -> FakeGenerationProvider:
    return FakeGenerationProvider()


@pytest.fixture
def embedding_gateway(embedding_provider) -> EmbeddingGateway:
    return EmbeddingGateway([embedding_provider], model="text-embedding-3-small")


@pytest.fixture
def generation_gateway(generation_provider) -> GenerationGateway:
    return GenerationGateway([generation_provider], model="gpt-4o-mini", max_tokens=512)


@pytest.fixture
def services(test_settings, embedding_gateway, generation_gateway) -> ServiceContainer:
    """Fully wired container backed by fake providers."""
    return ServiceContainer(test_settings, embedding_gateway, generation_gateway)


@pytest.fixture
def sample_text() -> str:
    return (
        "Photosynthesis converts light energy into chemical energy. "
        "Plants absorb carbon dioxide through their leaves. "
        "Chlorophyll gives leaves their green colour. "
        "The Calvin cycle fixes carbon into sugars. "
        "Mitochondria release energy through cellular respiration. "
        "Roots take up water and minerals from the soil."
    )
