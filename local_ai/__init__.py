"""
Local AI - Supervisor for a local Ollama runtime and a streaming chat engine for papers.
"""

__version__ = "1.0.0"
__author__ = "Local AI Team"

__all__ = [
    "LocalAIEngine",
    "ChatSessionManager",
    "OllamaRuntimeClient",
    "PaperContext",
]

# Lazy attribute access to avoid importing requests/ollama at package import time.
# This keeps `import local_ai.domain...` cheap during test collection.
def __getattr__(name: str):  # pragma: no cover - simple lazy loader
    if name == "LocalAIEngine":
        from .application.engine import LocalAIEngine as _E
        return _E
    if name == "ChatSessionManager":
        from .application.chat_service import ChatSessionManager as _M
        return _M
    if name == "OllamaRuntimeClient":
        from .infrastructure.ollama.client import OllamaRuntimeClient as _C
        return _C
    if name == "PaperContext":
        from .domain.models.conversation import PaperContext as _P
        return _P
    raise AttributeError(f"module 'local_ai' has no attribute {name!r}")
