"""
Runtime domain models - Model descriptors, progress events and lifecycle state.
"""

from __future__ import annotations
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from ..errors import LocalAIError

# (message, percent); percent == -1 means indeterminate
ProgressCallback = Callable[[str, int], None]

# (status, completed, total) as reported by a model pull
PullProgressCallback = Callable[[str, int, int], None]

INDETERMINATE = -1


@dataclass(frozen=True)
class ModelDescriptor:
    """A model available on the local runtime."""
    name: str
    size: int = 0
    modified_at: str = ""

    @property
    def base_name(self) -> str:
        return self.name.split(":", 1)[0]

    @property
    def tag(self) -> Optional[str]:
        if ":" not in self.name:
            return None
        return self.name.split(":", 1)[1]

    def matches(self, name: str) -> bool:
        """True for an exact match, or any tag of ``name`` when it has none."""
        return self.name == name or self.name.startswith(name + ":")

    @classmethod
    def from_api(cls, raw: Any) -> ModelDescriptor:
        """Build from a ``/api/tags`` entry, either a dict or an SDK object."""
        if isinstance(raw, Mapping):
            name = raw.get("name") or raw.get("model") or ""
            size = raw.get("size") or 0
            modified = raw.get("modified_at") or ""
        else:
            name = getattr(raw, "model", None) or getattr(raw, "name", None) or ""
            size = getattr(raw, "size", None) or 0
            modified = getattr(raw, "modified_at", None) or ""
        if not isinstance(modified, str):
            modified = modified.isoformat() if hasattr(modified, "isoformat") else str(modified)
        return cls(name=str(name), size=int(size), modified_at=modified)


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress report."""
    message: str
    percent: int = INDETERMINATE

    @property
    def indeterminate(self) -> bool:
        return self.percent == INDETERMINATE


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a liveness probe.

    ``error`` is set whenever ``running`` is False, so callers can tell a
    refused connection from a timeout or an unexpected status.
    """
    running: bool
    error: Optional[LocalAIError] = None

    def __bool__(self) -> bool:
        return self.running


class InitState(Enum):
    """States of the initialization state machine."""
    CHECK_RUNNING = "check_running"
    CHECK_INSTALLED = "check_installed"
    INSTALL = "install"
    START_SERVER = "start_server"
    ENSURE_MODEL = "ensure_model"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (InitState.DONE, InitState.FAILED)


@dataclass
class RuntimeProcessHandle:
    """A spawned runtime process. Only handles we started may be terminated."""
    process: subprocess.Popen
    started_by_us: bool = True

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process.poll() is None
