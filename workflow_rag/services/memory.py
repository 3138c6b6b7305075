"""Bounded, time-expiring conversation memory."""

import logging
import time
from typing import Callable, Dict, List, Optional

from workflow_rag.core.config import Settings, settings as default_settings
from workflow_rag.models.memory import ConversationMessage, ConversationSession, Role

logger = logging.getLogger(__name__)


class ConversationMemory:
    """Per-session message history held in process memory."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the memory store.

        Args:
            settings: Source of the session and message caps.
            clock: Returns the current time in seconds.
        """
        settings = settings or default_settings
        self.max_sessions = settings.memory_max_sessions
        self.max_messages_per_session = settings.memory_max_messages_per_session
        self.session_timeout = settings.memory_session_timeout_seconds
        self._clock = clock
        self._sessions: Dict[str, ConversationSession] = {}

    def _is_expired(self, session: ConversationSession, now: float) -> bool:
        return now - session.last_accessed > self.session_timeout

    def _live_session(self, session_id: str) -> Optional[ConversationSession]:
        """Look up a session, dropping it if it has been idle too long."""
        session = self._sessions.get(session_id)
        if session is not None and self._is_expired(session, self._clock()):
            logger.debug(f"Session {session_id} expired")
            del self._sessions[session_id]
            return None
        return session

    def get_session(self, session_id: str, document_id: Optional[str] = None) -> ConversationSession:
        """
        Get or create a session.

        Args:
            session_id: Session identifier.
            document_id: Document to associate if the session has none yet.

        Returns:
            The live session.
        """
        now = self._clock()
        session = self._live_session(session_id)

        if session is None:
            session = ConversationSession(
                session_id=session_id,
                document_id=document_id,
                created_at=now,
                last_accessed=now,
            )
            self._sessions[session_id] = session
            self._cleanup()
        else:
            session.last_accessed = now
            if document_id and not session.document_id:
                session.document_id = document_id

        return session

    def add_message(self, session_id: str, role: Role, content: str) -> None:
        """
        Append a message, dropping the oldest beyond the per-session cap.

        Args:
            session_id: Session identifier.
            role: ``user``, ``assistant`` or ``system``.
            content: Message text.
        """
        session = self.get_session(session_id)
        session.messages.append(
            ConversationMessage(role=role, content=content, timestamp=self._clock()))

        if len(session.messages) > self.max_messages_per_session:
            session.messages = session.messages[-self.max_messages_per_session:]

        session.last_accessed = self._clock()

    def get_history(self, session_id: str, max_messages: int = 5) -> List[ConversationMessage]:
        """
        Recent history, excluding the most recent message.

        Args:
            session_id: Session identifier.
            max_messages: Maximum number of messages to return.

        Returns:
            Up to ``max_messages`` messages, oldest first.
        """
        session = self._live_session(session_id)
        if session is None:
            return []
        session.last_accessed = self._clock()
        if not session.messages or max_messages <= 0:
            return []
        return session.messages[-max_messages - 1:-1]

    def get_all_messages(self, session_id: str) -> List[ConversationMessage]:
        session = self._live_session(session_id)
        if session is None:
            return []
        session.last_accessed = self._clock()
        return list(session.messages)

    def get_session_summary(self, session_id: str) -> str:
        """Short transcript of the last three messages."""
        messages = self.get_all_messages(session_id)[-3:]
        return "\n".join(
            f"{'User' if msg.role == 'user' else 'Assistant'}: {msg.content[:100]}..."
            for msg in messages
        )

    def has_session(self, session_id: str) -> bool:
        """Existence check; does not refresh the access time."""
        session = self._sessions.get(session_id)
        return session is not None and not self._is_expired(session, self._clock())

    def clear(self, session_id: str) -> None:
        """Remove a session immediately."""
        self._sessions.pop(session_id, None)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def _cleanup(self) -> None:
        """Purge idle sessions, then evict least recently used ones, when over the cap."""
        if len(self._sessions) <= self.max_sessions:
            return

        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
        for sid in expired:
            del self._sessions[sid]

        overflow = len(self._sessions) - self.max_sessions
        if overflow > 0:
            oldest = sorted(self._sessions.values(), key=lambda s: s.last_accessed)[:overflow]
            for session in oldest:
                del self._sessions[session.session_id]

        logger.info(
            f"Memory cleanup removed {len(expired)} expired and "
            f"{max(overflow, 0)} least recently used sessions")
