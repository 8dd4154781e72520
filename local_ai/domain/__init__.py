"""Domain layer - Pure business logic with no external dependencies."""

from .errors import (
    LocalAIError,
    ConnectivityError,
    RuntimeTimeoutError,
    ProtocolError,
    CancellationError,
    InstallError,
    PlatformUnsupportedError,
    ServerStartError,
    NoActiveSessionError,
    GenerationInProgressError,
)

__all__ = [
    "LocalAIError",
    "ConnectivityError",
    "RuntimeTimeoutError",
    "ProtocolError",
    "CancellationError",
    "InstallError",
    "PlatformUnsupportedError",
    "ServerStartError",
    "NoActiveSessionError",
    "GenerationInProgressError",
]
