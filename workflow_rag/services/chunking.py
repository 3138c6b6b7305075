"""Document chunking service."""

import re
from typing import List, Optional

from workflow_rag.core.config import Settings, settings as default_settings

SENTENCE_BOUNDARY = re.compile(r"[.!?]+\s+")


class ChunkingService:
    """Service for chunking documents into overlapping sentence groups."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize the chunking service."""
        settings = settings or default_settings
        self.chunk_size = settings.chunk_size
        self.chunk_overlap = settings.chunk_overlap

    def chunk(
        self,
        text: str,
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
    ) -> List[str]:
        """
        Chunk text into pieces of roughly ``chunk_size`` characters.

        Sentences are never split, so a sentence longer than ``chunk_size``
        becomes its own chunk. Each new chunk starts with the last
        ``overlap // 10`` words of the previous one.

        Args:
            text: Extracted document text.
            chunk_size: Target chunk length in characters.
            overlap: Overlap hint; divided by ten to get a word count.

        Returns:
            List of non-empty chunk strings.
        """
        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        overlap = self.chunk_overlap if overlap is None else overlap
        overlap_words = overlap // 10

        chunks: List[str] = []
        current = ""

        for sentence in SENTENCE_BOUNDARY.split(text):
            if len(current) + len(sentence) > chunk_size and current:
                chunks.append(current.strip())
                tail = current.split()[-overlap_words:] if overlap_words > 0 else []
                current = " ".join(tail + [sentence])
            else:
                current += (" " if current else "") + sentence

        if current.strip():
            chunks.append(current.strip())

        return [chunk for chunk in chunks if chunk]
