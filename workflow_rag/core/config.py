"""Application configuration using Pydantic settings."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")

    service_name: str = "workflow-rag"
    service_port: int = 5000
    log_level: str = "INFO"
    cors_origins: List[str] = [
        "http://localhost:5173", "http://localhost:3000", "http://localhost:5174"]

    # Provider credentials; a provider is only tried when its credential is set
    openai_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_http_referer: str = "https://github.com/workflow-rag/workflow-rag"
    openrouter_app_title: str = "Workflow RAG"
    ollama_base_url: Optional[str] = None
    use_openrouter_for_embeddings: bool = False

    embedding_model: str = "text-embedding-ada-002"
    chat_model: str = "gpt-3.5-turbo"
    max_tokens: int = 1024
    temperature: float = 0.7

    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Retrieval and prompt budget
    max_context_chunks: int = 5
    max_total_context_chunks: int = 3
    max_history_messages: int = 5
    max_chunk_length: int = 600
    max_history_message_chars: int = 500

    # Conversation memory
    memory_max_sessions: int = 100
    memory_max_messages_per_session: int = 20
    memory_session_timeout_seconds: float = 30 * 60

    max_upload_bytes: int = 10 * 1024 * 1024

    def configured_credentials(self) -> List[str]:
        """Names of the providers whose credentials are present."""
        present = []
        if self.openai_api_key and self.openai_api_key.strip():
            present.append("openai")
        if self.openrouter_api_key and self.openrouter_api_key.strip():
            present.append("openrouter")
        if self.ollama_base_url and self.ollama_base_url.strip():
            present.append("ollama")
        return present


settings = Settings()
