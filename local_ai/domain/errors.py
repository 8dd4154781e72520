"""
Error taxonomy - Typed failures raised across the runtime and chat layers.
Callers distinguish cancellation from genuine failure by class, never by message.
"""

from __future__ import annotations
from typing import Optional


class LocalAIError(Exception):
    """Base class for every error raised by local_ai."""


class ConnectivityError(LocalAIError):
    """Runtime server unreachable (connection refused, reset, DNS...)."""


class RuntimeTimeoutError(ConnectivityError):
    """Runtime server did not answer within the allotted time."""


class ProtocolError(LocalAIError):
    """Non-2xx status or an explicit error field in a runtime response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CancellationError(LocalAIError):
    """The in-flight request was aborted on purpose.

    Not a user-facing failure: callers should stop quietly.
    """


class InstallError(LocalAIError):
    """Download, extraction or permission failure while installing the runtime."""


class PlatformUnsupportedError(InstallError):
    """No runtime download is mapped for the current operating system."""


class ServerStartError(LocalAIError):
    """The runtime binary could not be spawned."""


class NoActiveSessionError(LocalAIError):
    """A chat operation needs an active session and there is none."""


class GenerationInProgressError(LocalAIError):
    """A chat request was issued while another one is still streaming."""
