"""
Chat Message Model

Defines the ChatMessage dataclass exchanged between the chat UI and the
tutor middleware.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class MessageRole(str, Enum):
    """Who authored a chat message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    ERROR = "error"


class MessageFormat(str, Enum):
    """How the message content should be rendered."""
    TEXT = "text"
    MARKDOWN = "markdown"
    STRUCTURED = "structured"
    MULTIMODAL = "multimodal"
    INTERACTIVE = "interactive"


@dataclass(frozen=True, eq=False)
class ChatMessage:
    """A single immutable turn in a tutoring conversation."""
    id: str
    content: str
    role: MessageRole
    format: MessageFormat = MessageFormat.TEXT
    timestamp: datetime = field(default_factory=datetime.now)
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        content: str,
        role: MessageRole,
        format: MessageFormat = MessageFormat.TEXT,
        user_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> "ChatMessage":
        """Build a message with a generated id."""
        return cls(
            id=f"{role.value}_{uuid.uuid4().hex[:12]}",
            content=content or "",
            role=role,
            format=format,
            timestamp=timestamp or datetime.now(),
            user_id=user_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "role": self.role.value,
            "format": self.format.value,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        timestamp = datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now()
        return cls(
            id=data["id"],
            content=data.get("content", ""),
            role=MessageRole(data.get("role", MessageRole.USER.value)),
            format=MessageFormat(data.get("format", MessageFormat.TEXT.value)),
            timestamp=timestamp,
            user_id=data.get("user_id"),
            metadata=data.get("metadata") or {},
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChatMessage):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        preview = self.content[:50]
        return f"ChatMessage(id={self.id}, role={self.role.value}, content={preview}...)"
