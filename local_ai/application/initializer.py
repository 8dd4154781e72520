"""
Initialization orchestrator - Brings the local runtime from nothing to ready.
Check, install, start, pull: each step runs once, in order, and any failure is terminal.
"""

from __future__ import annotations
import logging
from typing import Callable, Dict, List, Optional

from ..domain.errors import LocalAIError
from ..domain.interfaces.runtime_api import RuntimeAPI
from ..domain.models.runtime import InitState, ProgressCallback, ProgressEvent, INDETERMINATE
from ..infrastructure.runtime.installer import BinaryInstaller
from ..infrastructure.runtime.supervisor import ServerSupervisor
from .model_registry import ModelRegistry


class InitializationOrchestrator:
    """State machine composing installer, supervisor and model registry."""

    def __init__(
        self,
        runtime: RuntimeAPI,
        installer: BinaryInstaller,
        supervisor: ServerSupervisor,
        registry: ModelRegistry,
        logger: Optional[logging.Logger] = None
    ):
        self._runtime = runtime
        self._installer = installer
        self._supervisor = supervisor
        self._registry = registry
        self._logger = logger or logging.getLogger(__name__)

        self.state = InitState.CHECK_RUNNING
        self.history: List[InitState] = []
        self.last_event: Optional[ProgressEvent] = None
        self._on_progress: Optional[ProgressCallback] = None

        self._steps: Dict[InitState, Callable[[], InitState]] = {
            InitState.CHECK_RUNNING: self._check_running,
            InitState.CHECK_INSTALLED: self._check_installed,
            InitState.INSTALL: self._install,
            InitState.START_SERVER: self._start_server,
            InitState.ENSURE_MODEL: self._ensure_model,
        }

    @property
    def ready(self) -> bool:
        return self.state is InitState.DONE

    def initialize(self, on_progress: Optional[ProgressCallback] = None) -> bool:
        """Run the state machine from the top. No step is retried."""
        self._on_progress = on_progress
        self.history = []
        self.state = InitState.CHECK_RUNNING

        while not self.state.terminal:
            self.history.append(self.state)
            step = self._steps[self.state]
            try:
                next_state = step()
            except (LocalAIError, OSError) as e:
                self._logger.error(f"Initialization failed during {self.state.value}: {e}")
                next_state = self._fail(f"Error: {e}")
            self._logger.debug(f"{self.state.value} -> {next_state.value}")
            self.state = next_state

        self.history.append(self.state)
        if self.state is InitState.DONE:
            self._report("Ready!", 100)
            return True
        return False

    # -----------------
    # Steps
    # -----------------
    def _check_running(self) -> InitState:
        self._report("Checking for Ollama...", 0)
        probe = self._runtime.probe()
        if probe.running:
            self._logger.info("Ollama already running")
            return InitState.ENSURE_MODEL
        self._logger.info(f"Ollama not running ({probe.error})")
        return InitState.CHECK_INSTALLED

    def _check_installed(self) -> InitState:
        if self._installer.is_installed():
            return InitState.START_SERVER
        return InitState.INSTALL

    def _install(self) -> InitState:
        self._report("Installing Ollama...", 0)
        if not self._installer.install(self._on_progress):
            return self._fail("Failed to install Ollama")
        return InitState.START_SERVER

    def _start_server(self) -> InitState:
        self._report("Starting Ollama server...", 0)
        if not self._supervisor.start_server():
            return self._fail("Failed to start Ollama server")
        return InitState.ENSURE_MODEL

    def _ensure_model(self) -> InitState:
        if not self._registry.ensure_model(on_progress=self._on_progress):
            return self._fail("Failed to download model")
        return InitState.DONE

    # -----------------
    # Helpers
    # -----------------
    def _fail(self, message: str) -> InitState:
        self._report(message, INDETERMINATE)
        return InitState.FAILED

    def _report(self, message: str, percent: int) -> None:
        self.last_event = ProgressEvent(message, percent)
        if self._on_progress:
            self._on_progress(message, percent)
