"""Domain models package."""

from .conversation import ChatMessage, ChatSession, MessageRole, PaperContext
from .runtime import (
    INDETERMINATE,
    InitState,
    ModelDescriptor,
    ProbeResult,
    ProgressCallback,
    ProgressEvent,
    PullProgressCallback,
    RuntimeProcessHandle,
)

__all__ = [
    "ChatMessage",
    "ChatSession",
    "MessageRole",
    "PaperContext",
    "INDETERMINATE",
    "InitState",
    "ModelDescriptor",
    "ProbeResult",
    "ProgressCallback",
    "ProgressEvent",
    "PullProgressCallback",
    "RuntimeProcessHandle",
]
