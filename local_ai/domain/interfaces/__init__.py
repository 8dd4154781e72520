"""Domain interfaces package - Protocols for ports."""

from .runtime_api import RuntimeAPI, Sleeper

__all__ = [
    "RuntimeAPI",
    "Sleeper",
]
