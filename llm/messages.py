"""
Message and conversation types for the chat backend.

Messages are immutable once appended; a conversation is the ordered list of
messages stored under (user_id, session_id).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class MessageRole(Enum):
    """Author of a message."""
    HUMAN = "human"
    AI = "ai"
    SYSTEM = "system"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "MessageRole":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


# Prefixes used when the transcript is rendered into the prompt buffer
BUFFER_PREFIXES = {
    MessageRole.HUMAN: "Human",
    MessageRole.AI: "AI",
    MessageRole.SYSTEM: "System",
}


@dataclass(frozen=True)
class ChatMessage:
    """A single message in a conversation."""
    role: MessageRole
    content: str

    @classmethod
    def human(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.HUMAN, content=content)

    @classmethod
    def ai(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.AI, content=content)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.SYSTEM, content=content)

    def to_dict(self) -> Dict[str, str]:
        """Convert to the stored document shape."""
        return {"type": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=MessageRole.parse(data.get("type")),
            content=str(data.get("content", "")),
        )


@dataclass
class Conversation:
    """A conversation document as read from a user's partition."""
    user_id: str
    session_id: str
    messages: List[ChatMessage] = field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)


@dataclass(frozen=True)
class ConversationSummary:
    """Per-conversation projection returned by the catalog."""
    session_id: str
    message_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"sessionID": self.session_id, "messageCount": self.message_count}
