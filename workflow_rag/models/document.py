"""Document models for the in-memory vector store."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class DocumentChunk(BaseModel):
    """Chunk model representing an embedded document fragment."""

    model_config = ConfigDict(frozen=True)

    text: str
    embedding: List[float]


class Document(BaseModel):
    """Document model holding every embedded chunk of one upload."""

    model_config = ConfigDict(frozen=True)

    id: str
    chunks: List[DocumentChunk]
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def dimensions(self) -> int:
        """Embedding dimensionality shared by all chunks."""
        return len(self.chunks[0].embedding) if self.chunks else 0


class SearchResult(BaseModel):
    """A chunk returned by similarity search."""

    text: str
    score: float


class IngestResult(BaseModel):
    """Outcome of processing an uploaded document."""

    document_id: str
    text: str
    chunks: List[str]
