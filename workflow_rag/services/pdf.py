"""PDF text extraction and document ingestion."""

import io
import logging
import uuid
from pathlib import Path
from typing import Union

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from workflow_rag.core.exceptions import DocumentProcessingError
from workflow_rag.models.document import IngestResult
from workflow_rag.services.chunking import ChunkingService
from workflow_rag.services.vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

PdfSource = Union[bytes, str, Path]


def extract_text(source: PdfSource) -> str:
    """
    Extract the text of every page of a PDF.

    Args:
        source: Raw PDF bytes or a file path.

    Returns:
        Page texts joined by newlines.

    Raises:
        DocumentProcessingError: If the file is unreadable or has no text.
    """
    try:
        reader = PdfReader(io.BytesIO(source) if isinstance(source, bytes) else source)
        pages_text = []
        for page in reader.pages:
            pages_text.append(page.extract_text() or "")
    except (PdfReadError, OSError, ValueError) as e:
        raise DocumentProcessingError(f"Failed to read PDF: {str(e)}") from e

    text = "\n".join(pages_text)
    if not text.strip():
        raise DocumentProcessingError("PDF contains no extractable text")
    return text


class DocumentIngestionService:
    """Turns an uploaded PDF into an indexed document."""

    def __init__(self, chunking_service: ChunkingService, vector_store: InMemoryVectorStore) -> None:
        self.chunking_service = chunking_service
        self.vector_store = vector_store

    async def process_pdf(self, source: PdfSource) -> IngestResult:
        """
        Extract, chunk and index a PDF.

        Args:
            source: Raw PDF bytes or a file path.

        Returns:
            Generated document id, extracted text and chunks.

        Raises:
            DocumentProcessingError: If no text can be extracted.
            EmbeddingError: If the chunks cannot be embedded.
        """
        text = extract_text(source)
        return await self.process_text(text)

    async def process_text(self, text: str) -> IngestResult:
        """Chunk and index already extracted text."""
        if not text.strip():
            raise DocumentProcessingError("Document contains no extractable text")

        chunks = self.chunking_service.chunk(text)
        document_id = str(uuid.uuid4())
        await self.vector_store.add_document(document_id, chunks)

        logger.info(f"Processed document {document_id} into {len(chunks)} chunks")
        return IngestResult(document_id=document_id, text=text, chunks=chunks)
