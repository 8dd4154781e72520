"""
Conversation domain models - Pure data for chat sessions and attached papers.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Any, Mapping
from enum import Enum


class MessageRole(Enum):
    """Message roles in conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ChatMessage:
    """Represents a single message in a session."""
    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for API calls."""
        return {
            "role": self.role.value,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChatMessage:
        """Create ChatMessage from dictionary."""
        role_str = data.get("role", "user")
        try:
            role = MessageRole(role_str)
        except ValueError:
            role = MessageRole.USER
        return cls(role=role, content=str(data.get("content") or ""))

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.ASSISTANT, content=content)


@dataclass(frozen=True)
class PaperContext:
    """Metadata and extracted text of one paper, supplied by an extractor.

    The chat layer only reads these records; it never inspects where they
    came from.
    """
    title: str = ""
    authors: str = ""
    year: str = ""
    item_type: str = ""
    abstract: str = ""
    text: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PaperContext:
        """Create PaperContext from a mapping (accepts camelCase ``itemType``)."""
        def _s(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value is not None:
                    return str(value)
            return ""

        return cls(
            title=_s("title"),
            authors=_s("authors"),
            year=_s("year"),
            item_type=_s("item_type", "itemType"),
            abstract=_s("abstract"),
            text=_s("text"),
        )


@dataclass
class ChatSession:
    """One multi-turn conversation bound to a set of papers."""
    id: str
    label: str
    papers: List[PaperContext] = field(default_factory=list)
    messages: List[ChatMessage] = field(default_factory=list)

    def to_api_format(self) -> List[Dict[str, Any]]:
        """Convert history to the format expected by the chat endpoint."""
        return [message.to_dict() for message in self.messages]
