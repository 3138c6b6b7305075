"""Dependency injection for services."""

import logging
from typing import Optional

from fastapi import Request

from workflow_rag.core.config import Settings, settings as default_settings
from workflow_rag.services.chunking import ChunkingService
from workflow_rag.services.embedding import EmbeddingGateway
from workflow_rag.services.llm import GenerationGateway
from workflow_rag.services.memory import ConversationMemory
from workflow_rag.services.pdf import DocumentIngestionService
from workflow_rag.services.rag import RAGService
from workflow_rag.services.vector_store import InMemoryVectorStore
from workflow_rag.services.workflow import WorkflowExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for the process-wide service instances."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        embedding_gateway: Optional[EmbeddingGateway] = None,
        generation_gateway: Optional[GenerationGateway] = None,
    ) -> None:
        """
        Initialize service container.

        Args:
            settings: Application settings.
            embedding_gateway: Prebuilt embedding gateway; built from settings when omitted.
            generation_gateway: Prebuilt generation gateway; built from settings when omitted.

        Raises:
            ConfigurationError: If no provider credential is configured.
        """
        self.settings = settings or default_settings
        self.embedding_gateway = embedding_gateway or EmbeddingGateway.from_settings(self.settings)
        self.generation_gateway = generation_gateway or GenerationGateway.from_settings(self.settings)
        self.chunking_service = ChunkingService(self.settings)
        self.vector_store = InMemoryVectorStore(self.embedding_gateway)
        self.memory = ConversationMemory(self.settings)
        self.rag_service = RAGService(
            self.vector_store, self.generation_gateway, self.memory, self.settings)
        self.workflow_executor = WorkflowExecutor(self.rag_service, self.settings)
        self.ingestion_service = DocumentIngestionService(
            self.chunking_service, self.vector_store)

    async def shutdown(self) -> None:
        """Close every provider client."""
        for provider in [*self.embedding_gateway.providers, *self.generation_gateway.providers]:
            await provider.close()
        logger.info("Provider clients closed")


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's container."""
    return request.app.state.services
