"""Tests for the retrieval/answer service."""

import pytest

from workflow_rag.core.exceptions import DocumentNotFoundError
from workflow_rag.models.document import SearchResult

CHUNKS = [
    "Photosynthesis converts light energy into chemical energy",
    "Roots take up water and minerals from the soil",
]


@pytest.fixture
def rag(services):
    return services.rag_service


class TestPrompts:

    def test_user_prompt_layout(self, rag):
        context = [SearchResult(text="Leaves are green.", score=0.9),
                   SearchResult(text="Roots absorb water.", score=0.8)]
        history = [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello"}]

        prompt = rag.build_user_prompt("Why are leaves green?", context, history)

        assert prompt == (
            "## Document Context\n\n"
            "[Excerpt 1]:\nLeaves are green.\n\n"
            "[Excerpt 2]:\nRoots absorb water.\n\n"
            "## Previous Context\n\n"
            "Q: Hi\n"
            "A: Hello\n"
            "\n"
            "## Question\nWhy are leaves green?\n\n"
            "## Answer\n"
            "Use the document context above. "
        )

    def test_prompt_without_context_or_history(self, rag):
        prompt = rag.build_user_prompt("Anything?", [], [])

        assert prompt == "## Question\nAnything?\n\n## Answer\n"

    def test_long_chunks_are_truncated(self, rag):
        rag.max_chunk_length = 10
        context = [SearchResult(text="x" * 50, score=1.0)]

        prompt = rag.build_user_prompt("q", context, [])

        assert "[Excerpt 1]:\n" + "x" * 10 + "...\n" in prompt

    def test_system_prompt_asks_to_flag_missing_information(self, rag):
        system_prompt = rag.build_system_prompt()

        assert "document context" in system_prompt
        assert "isn't in the context, clearly state that" in system_prompt


class TestGenerateResponse:

    async def test_searches_when_only_document_id_given(self, rag, services, generation_provider):
        await services.vector_store.add_document("doc-1", CHUNKS)

        answer = await rag.generate_response("What do roots do?", document_id="doc-1")

        assert answer == "Generated answer"
        prompt = generation_provider.calls[0]["user_prompt"]
        assert "## Document Context" in prompt
        assert CHUNKS[1] in prompt

    async def test_given_context_skips_search(self, rag, embedding_provider, generation_provider):
        context = [SearchResult(text="Provided chunk", score=0.5)]

        await rag.generate_response("q", context=context, document_id="unknown-doc")

        assert embedding_provider.calls == []
        assert "Provided chunk" in generation_provider.calls[0]["user_prompt"]

    async def test_unknown_document_propagates(self, rag):
        with pytest.raises(DocumentNotFoundError):
            await rag.generate_response("q", document_id="missing")

    async def test_records_turn_in_session_memory(self, rag, services):
        await rag.generate_response("First question", context=[], session_id="s1")

        messages = services.memory.get_all_messages("s1")
        assert [(m.role, m.content) for m in messages] == [
            ("user", "First question"), ("assistant", "Generated answer")]

    async def test_history_comes_from_memory(self, rag, services, generation_provider):
        services.memory.add_message("s1", "user", "Earlier question")
        services.memory.add_message("s1", "system", "internal note")
        services.memory.add_message("s1", "assistant", "Earlier answer")
        services.memory.add_message("s1", "user", "pending")

        await rag.generate_response("Follow up", context=[], session_id="s1")

        history = generation_provider.calls[0]["history"]
        assert history == [
            {"role": "user", "content": "Earlier question"},
            {"role": "assistant", "content": "Earlier answer"},
        ]
        assert "Q: Earlier question\nA: Earlier answer" in generation_provider.calls[0]["user_prompt"]

    async def test_history_messages_are_truncated(self, rag, generation_provider):
        rag.max_history_message_chars = 5
        history = [{"role": "user", "content": "abcdefghij"}]

        await rag.generate_response("q", context=[], history=history)

        assert generation_provider.calls[0]["history"] == [{"role": "user", "content": "abcde"}]

    async def test_session_is_linked_to_document(self, rag, services):
        await services.vector_store.add_document("doc-1", CHUNKS)

        await rag.generate_response("q", document_id="doc-1", session_id="s1")

        assert services.memory.get_session("s1").document_id == "doc-1"

    async def test_failed_generation_records_nothing(self, rag, services, generation_provider):
        generation_provider.fail_with = RuntimeError("upstream down")

        with pytest.raises(Exception):
            await rag.generate_response("q", context=[], session_id="s1")

        assert services.memory.get_all_messages("s1") == []
