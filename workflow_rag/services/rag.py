"""Retrieval-augmented answer generation."""

import logging
from typing import Dict, List, Optional, Sequence

from workflow_rag.core.config import Settings, settings as default_settings
from workflow_rag.models.document import SearchResult
from workflow_rag.services.llm import GenerationGateway
from workflow_rag.services.memory import ConversationMemory
from workflow_rag.services.vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful assistant that provides detailed, comprehensive answers based on the provided document context.

When answering questions:
- Provide thorough, detailed explanations
- Include relevant examples and details from the context
- Explain concepts fully and clearly
- Use the document context extensively to support your answers
- If information isn't in the context, clearly state that and provide what you can based on general knowledge

Aim for comprehensive, well-explained responses that fully address the user's question."""

HistoryMessage = Dict[str, str]


class RAGService:
    """Answers questions against indexed documents."""

    def __init__(
        self,
        vector_store: InMemoryVectorStore,
        generation_gateway: GenerationGateway,
        memory: ConversationMemory,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize the RAG service.

        Args:
            vector_store: Store searched for context.
            generation_gateway: Gateway producing the answer.
            memory: Conversation memory for session history.
            settings: Retrieval and prompt limits.
        """
        settings = settings or default_settings
        self.vector_store = vector_store
        self.generation_gateway = generation_gateway
        self.memory = memory
        self.top_k = settings.max_context_chunks
        self.max_history_messages = settings.max_history_messages
        self.max_chunk_length = settings.max_chunk_length
        self.max_history_message_chars = settings.max_history_message_chars

    async def search(self, query: str, document_id: str, top_k: Optional[int] = None) -> List[SearchResult]:
        return await self.vector_store.search(query, document_id, top_k or self.top_k)

    def session_history(self, session_id: str) -> List[HistoryMessage]:
        """
        Recent user/assistant turns of a session, truncated for the prompt.

        Args:
            session_id: Session identifier.

        Returns:
            History as ``{"role", "content"}`` dicts.
        """
        messages = self.memory.get_history(session_id, self.max_history_messages)
        return self._truncate_history(
            {"role": msg.role, "content": msg.content}
            for msg in messages
            if msg.role != "system"
        )

    def _truncate_history(self, history) -> List[HistoryMessage]:
        return [
            {
                "role": "user" if msg["role"] == "user" else "assistant",
                "content": msg["content"][:self.max_history_message_chars],
            }
            for msg in history
        ]

    async def generate_response(
        self,
        query: str,
        context: Optional[Sequence[SearchResult]] = None,
        document_id: Optional[str] = None,
        session_id: Optional[str] = None,
        history: Optional[Sequence[HistoryMessage]] = None,
    ) -> str:
        """
        Answer a question, optionally retrieving context and history first.

        Args:
            query: User question.
            context: Retrieved chunks; searched from ``document_id`` when omitted.
            document_id: Document to search and associate with the session.
            session_id: Session whose memory supplies and records history.
            history: Prior turns; fetched from memory when omitted.

        Returns:
            Generated answer.

        Raises:
            DocumentNotFoundError: If ``document_id`` is unknown.
            EmbeddingError: If the query cannot be embedded.
            LLMError: If every generation provider fails.
        """
        if context is None and document_id:
            context = await self.search(query, document_id)

        if history is None and session_id:
            history = self.session_history(session_id)
        elif history is not None:
            history = self._truncate_history(history)

        context = list(context or [])
        history = list(history or [])

        response = await self.generation_gateway.complete(
            self.build_system_prompt(),
            history,
            self.build_user_prompt(query, context, history),
        )

        if session_id:
            self.memory.get_session(session_id, document_id)
            self.memory.add_message(session_id, "user", query)
            self.memory.add_message(session_id, "assistant", response)

        logger.info(
            f"Generated response using {len(context)} context chunks and "
            f"{len(history)} history messages")
        return response

    def build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(
        self,
        query: str,
        context: Sequence[SearchResult],
        history: Sequence[HistoryMessage],
    ) -> str:
        """
        Lay out context excerpts, previous turns and the question.

        Args:
            query: User question.
            context: Context chunks, each truncated to ``max_chunk_length``.
            history: Prior turns rendered as ``Q:``/``A:`` lines.

        Returns:
            Prompt text ending with an answer cue.
        """
        prompt = ""

        if context:
            prompt += "## Document Context\n\n"
            for index, item in enumerate(context, start=1):
                text = item.text
                if len(text) > self.max_chunk_length:
                    text = text[:self.max_chunk_length] + "..."
                prompt += f"[Excerpt {index}]:\n{text}\n\n"

        if history:
            prompt += "## Previous Context\n\n"
            for msg in history:
                label = "Q" if msg["role"] == "user" else "A"
                prompt += f"{label}: {msg['content']}\n"
            prompt += "\n"

        prompt += f"## Question\n{query}\n\n"
        prompt += "## Answer\n"

        if context:
            prompt += "Use the document context above. "

        return prompt
