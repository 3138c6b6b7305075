"""In-memory vector store with cosine similarity search."""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from workflow_rag.core.exceptions import DocumentNotFoundError, VectorStoreError
from workflow_rag.models.document import Document, DocumentChunk, SearchResult
from workflow_rag.monitoring.metrics import chunks_indexed_total, documents_indexed_total, searches_total
from workflow_rag.services.embedding import EmbeddingGateway

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity ``dot(a, b) / (|a| * |b|)``.

    A zero-norm vector yields NaN.

    Raises:
        VectorStoreError: If the vectors differ in length.
    """
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise VectorStoreError("Vectors must have the same length")
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.dot(va, vb) / (np.linalg.norm(va) * np.linalg.norm(vb)))


class InMemoryVectorStore:
    """Per-document chunk/embedding store.

    State lives for the process lifetime only. Access is not locked: concurrent
    uploads to the same document id race and the last write wins.
    """

    def __init__(self, embedding_gateway: EmbeddingGateway) -> None:
        """
        Initialize the vector store.

        Args:
            embedding_gateway: Gateway used for chunk and query embeddings.
        """
        self.embedding_gateway = embedding_gateway
        self._documents: Dict[str, Document] = {}
        self._matrices: Dict[str, np.ndarray] = {}

    async def add_document(self, document_id: str, chunks: Sequence[str]) -> Document:
        """
        Embed and store the chunks of a document.

        Nothing is stored when embedding fails.

        Args:
            document_id: Identifier of the document.
            chunks: Chunk texts.

        Returns:
            The stored document.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
        chunks = list(chunks)
        embeddings = await self.embedding_gateway.embed(chunks)

        document = Document(
            id=document_id,
            chunks=[
                DocumentChunk(text=text, embedding=embedding)
                for text, embedding in zip(chunks, embeddings)
            ],
        )
        self._documents[document_id] = document
        self._matrices[document_id] = np.asarray(embeddings, dtype=float)

        documents_indexed_total.inc()
        chunks_indexed_total.inc(len(chunks))
        logger.info(
            f"Stored document {document_id}: {len(chunks)} chunks, "
            f"{document.dimensions} dimensions")
        return document

    async def search(self, query: str, document_id: str, top_k: int = 5) -> List[SearchResult]:
        """
        Search a document for the chunks most similar to ``query``.

        Args:
            query: Query text.
            document_id: Document to search.
            top_k: Maximum number of results.

        Returns:
            Results sorted by descending cosine similarity.

        Raises:
            DocumentNotFoundError: If the document is unknown.
            EmbeddingError: If the query cannot be embedded.
        """
        document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        searches_total.inc()
        if not document.chunks or top_k <= 0:
            return []

        query_embedding = np.asarray(
            await self.embedding_gateway.embed_one(query), dtype=float)
        matrix = self._matrices[document_id]
        if matrix.shape[1] != query_embedding.shape[0]:
            raise VectorStoreError(
                f"Query embedding has {query_embedding.shape[0]} dimensions, "
                f"document {document_id} was indexed with {matrix.shape[1]}")

        with np.errstate(divide="ignore", invalid="ignore"):
            norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_embedding)
            scores = (matrix @ query_embedding) / norms

        # Stable sort keeps chunk order among equal scores
        order = sorted(range(len(scores)), key=lambda i: -scores[i])[:top_k]
        return [
            SearchResult(text=document.chunks[i].text, score=float(scores[i]))
            for i in order
        ]

    def get_document(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def has_document(self, document_id: str) -> bool:
        return document_id in self._documents

    @property
    def document_count(self) -> int:
        return len(self._documents)

    @property
    def chunk_count(self) -> int:
        return sum(len(doc.chunks) for doc in self._documents.values())
