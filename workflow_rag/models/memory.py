"""Conversation memory models."""

from dataclasses import dataclass, field
from typing import List, Literal, Optional

Role = Literal["user", "assistant", "system"]


@dataclass
class ConversationMessage:
    """A single role-tagged message."""

    role: Role
    content: str
    timestamp: float


@dataclass
class ConversationSession:
    """Message history for one workflow session."""

    session_id: str
    created_at: float
    last_accessed: float
    document_id: Optional[str] = None
    messages: List[ConversationMessage] = field(default_factory=list)
