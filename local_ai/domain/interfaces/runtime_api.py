"""
Runtime API protocol interface.
Defines the contract the chat and lifecycle layers need from a runtime client.
"""

from __future__ import annotations
from typing import Protocol, List, Dict, Any, Optional, Callable

from ..models.runtime import ModelDescriptor, ProbeResult, PullProgressCallback


class RuntimeAPI(Protocol):
    """Protocol for clients of the local model runtime."""

    def probe(self) -> ProbeResult:
        """Check liveness and report why the runtime is not reachable."""
        ...

    def is_running(self) -> bool:
        """Check if the runtime answers at all. Never raises."""
        ...

    def list_models(self) -> List[ModelDescriptor]:
        """List locally available models. Never raises."""
        ...

    def has_model(self, name: str) -> bool:
        """Check if a model (any tag when ``name`` has none) is present."""
        ...

    def pull_model(self, name: str, on_progress: Optional[PullProgressCallback] = None) -> bool:
        """Download a model onto the runtime."""
        ...

    def chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        on_token: Optional[Callable[[str], None]] = None
    ) -> str:
        """Stream a chat reply, returning the full text."""
        ...

    def abort(self) -> bool:
        """Cancel the in-flight chat request, if any."""
        ...


class Sleeper(Protocol):
    """Anything that can wait a number of seconds (``time.sleep`` in production)."""

    def __call__(self, seconds: float) -> None:
        ...
