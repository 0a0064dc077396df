"""
Conversation Types

Messages and the bounded history window used for prompt construction.

Design Rationale:
- The assistant is stateless between requests: callers send the history they
  want considered, nothing is stored here
- Messages are immutable, so a window can never alter the caller's history
- Sliding window keeps only the most recent messages, oldest dropped silently

Usage:
    history = [ChatMessage.from_dict(m) for m in payload["conversationHistory"]]
    window = ConversationWindow(history, max_messages=4)
    messages = window.to_llm_messages()
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from rag_assistant.errors import ValidationError

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class ChatMessage:
    """
    A single message in the conversation.

    Attributes:
        role: "user", "assistant", or "system"
        content: The message text
    """

    role: str
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValidationError(f"Unknown message role: {self.role!r}")
        if not isinstance(self.content, str):
            raise ValidationError("Message content must be a string")

    def to_dict(self) -> Dict[str, str]:
        """Convert to the chat-completion message format."""
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        """Create from dictionary."""
        if not isinstance(data, dict) or "role" not in data or "content" not in data:
            raise ValidationError("A message needs 'role' and 'content'")
        return cls(role=data["role"], content=data["content"])

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


class ConversationWindow:
    """
    Read-only view of the last N messages of a conversation.

    Example:
        window = ConversationWindow(history, max_messages=4)
        len(window)              # <= 4
        window.to_llm_messages() # [{"role": ..., "content": ...}, ...]
    """

    def __init__(self, messages: Iterable[ChatMessage], max_messages: int):
        """
        Args:
            messages: Full conversation, oldest first
            max_messages: Window size; 0 or less yields an empty window
        """
        history = tuple(messages)
        self.max_messages = max_messages
        # history[-0:] would return everything
        self._messages: Tuple[ChatMessage, ...] = history[-max_messages:] if max_messages > 0 else ()

        dropped = len(history) - len(self._messages)
        if dropped:
            logger.debug(f"Conversation window dropped {dropped} older messages")

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)

    def to_llm_messages(self) -> List[Dict[str, str]]:
        """Return the window in the chat-completion message format."""
        return [m.to_dict() for m in self._messages]
