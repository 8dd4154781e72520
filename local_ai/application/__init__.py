"""Application layer - Application services orchestrating business logic."""

from .chat_service import ChatSessionManager
from .engine import LocalAIEngine
from .initializer import InitializationOrchestrator
from .model_registry import ModelRegistry

__all__ = [
    "ChatSessionManager",
    "LocalAIEngine",
    "InitializationOrchestrator",
    "ModelRegistry",
]
