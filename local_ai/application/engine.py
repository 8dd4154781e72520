"""
Engine - One explicit context object owning the runtime, its lifecycle and all chat sessions.
"""

from __future__ import annotations
import logging
import time
from typing import Optional

from ..domain.interfaces.runtime_api import Sleeper
from ..domain.models.runtime import ProbeResult, ProgressCallback
from ..infrastructure.config.settings import AppSettings, get_settings
from ..infrastructure.ollama.client import OllamaRuntimeClient
from ..infrastructure.runtime.installer import BinaryInstaller, InstallLayout
from ..infrastructure.runtime.platform import PlatformTarget, resolve_platform
from ..infrastructure.runtime.polling import PollPolicy, poll_until
from ..infrastructure.runtime.supervisor import ServerSupervisor
from .chat_service import ChatSessionManager
from .initializer import InitializationOrchestrator
from .model_registry import ModelRegistry


class LocalAIEngine:
    """Wires every component for one process and resets them on shutdown."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        runtime: Optional[OllamaRuntimeClient] = None,
        target: Optional[PlatformTarget] = None,
        sleep: Sleeper = time.sleep,
        logger: Optional[logging.Logger] = None
    ):
        self.settings = settings or get_settings()
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

        runtime_settings = self.settings.runtime
        chat_settings = self.settings.chat

        self.runtime = runtime or OllamaRuntimeClient.from_settings(runtime_settings)
        self.target = target or resolve_platform(version=runtime_settings.version)
        self.installer = BinaryInstaller(InstallLayout(runtime_settings.data_dir, self.target))
        self.supervisor = ServerSupervisor(
            self.runtime,
            self.installer,
            poll_policy=PollPolicy.from_settings(runtime_settings, sleep=sleep),
        )
        self.registry = ModelRegistry(self.runtime, default_model=chat_settings.model)
        self.orchestrator = InitializationOrchestrator(
            self.runtime, self.installer, self.supervisor, self.registry
        )
        self.chat = ChatSessionManager(
            self.runtime,
            model=chat_settings.model,
            context_budget=chat_settings.context_budget,
            label_length=chat_settings.label_length,
        )

    def __enter__(self) -> LocalAIEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def initialize(self, on_progress: Optional[ProgressCallback] = None) -> bool:
        """Get the runtime ready for the current chat model."""
        self.registry.default_model = self.chat.get_model()
        return self.orchestrator.initialize(on_progress)

    def wait_until_running(self, interval: float = 5.0, max_checks: int = 12) -> ProbeResult:
        """Probe on a fixed interval until the runtime answers or checks run out."""
        if self.runtime.is_running():
            return ProbeResult(True)
        policy = PollPolicy(max_attempts=max_checks, interval=interval, sleep=self._sleep)
        if poll_until(self.runtime.is_running, policy, logger=self._logger):
            return ProbeResult(True)
        return self.runtime.probe()

    def shutdown(self) -> None:
        """Full reset: sessions cleared, generation aborted, owned runtime stopped."""
        self._logger.info("Shutting down local AI engine")
        self.chat.abort_generation()
        self.chat.clear_chat()
        self.supervisor.stop_server()
        self.runtime.close()
