"""
Server supervisor - Starts and stops the runtime server process.
Only a process this supervisor spawned is ever terminated by it.
"""

from __future__ import annotations
import logging
import os
import subprocess
from typing import Any, Callable, Dict, Optional

from ...domain.errors import ServerStartError
from ...domain.interfaces.runtime_api import RuntimeAPI
from ...domain.models.runtime import RuntimeProcessHandle
from .installer import BinaryInstaller
from .polling import PollPolicy, poll_until

MODELS_ENV_VAR = "OLLAMA_MODELS"
STOP_TIMEOUT_S = 5.0


class ServerSupervisor:
    """Owns the lifecycle of one runtime server process."""

    def __init__(
        self,
        runtime: RuntimeAPI,
        installer: BinaryInstaller,
        poll_policy: Optional[PollPolicy] = None,
        popen: Callable[..., Any] = subprocess.Popen,
        logger: Optional[logging.Logger] = None
    ):
        self._runtime = runtime
        self._installer = installer
        self._poll_policy = poll_policy or PollPolicy()
        self._popen = popen
        self._logger = logger or logging.getLogger(__name__)
        self._handle: Optional[RuntimeProcessHandle] = None

    @property
    def handle(self) -> Optional[RuntimeProcessHandle]:
        return self._handle

    @property
    def owns_process(self) -> bool:
        return self._handle is not None and self._handle.started_by_us

    def start_server(self) -> bool:
        """Make sure a runtime answers, spawning our own if none does."""
        if self._runtime.is_running():
            self._logger.info("Ollama already running externally")
            return True

        if self._handle is not None and self._handle.is_alive():
            # Spawned earlier but never confirmed; wait on it instead of spawning twice
            self._logger.info(f"Waiting on previously started Ollama (pid {self._handle.pid})")
            return self._wait_until_ready()

        binary = self._installer.binary_path
        if not self._installer.is_installed():
            self._logger.warning(f"Ollama binary not found at {binary}")
            return False

        models_dir = self._installer.layout.models_dir
        try:
            models_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ServerStartError(f"Cannot create models directory {models_dir}: {e}") from e

        try:
            process = self._popen(
                [str(binary), "serve"],
                env=self._child_env(str(models_dir)),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **self._detach_kwargs()
            )
        except OSError as e:
            raise ServerStartError(f"Could not start {binary}: {e}") from e

        self._handle = RuntimeProcessHandle(process=process, started_by_us=True)
        self._logger.info(f"Started Ollama server (pid {process.pid}), models in {models_dir}")
        return self._wait_until_ready()

    def stop_server(self) -> None:
        """Terminate the runtime, but only if we started it."""
        handle = self._handle
        if handle is None or not handle.started_by_us:
            return

        process = handle.process
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=STOP_TIMEOUT_S)
            except subprocess.TimeoutExpired:
                self._logger.warning(f"Ollama (pid {process.pid}) ignored terminate; killing")
                process.kill()
                try:
                    process.wait(timeout=STOP_TIMEOUT_S)
                except subprocess.TimeoutExpired:
                    self._logger.error(f"Ollama (pid {process.pid}) did not exit after kill")
            self._logger.info("Ollama server stopped")

        self._handle = None

    def _wait_until_ready(self) -> bool:
        handle = self._handle
        outcome = poll_until(
            self._runtime.is_running,
            self._poll_policy,
            should_stop=lambda: handle is not None and not handle.is_alive(),
            logger=self._logger,
        )
        if outcome.succeeded:
            self._logger.info(f"Ollama server ready after {outcome.attempts} check(s)")
            return True
        if outcome.stopped_early:
            self._logger.error("Ollama server exited before becoming ready")
        else:
            self._logger.error(f"Ollama server did not respond after {outcome.attempts} checks")
        return False

    @staticmethod
    def _child_env(models_dir: str) -> Dict[str, str]:
        env = dict(os.environ)
        env[MODELS_ENV_VAR] = models_dir
        return env

    @staticmethod
    def _detach_kwargs() -> Dict[str, Any]:
        # Keep terminal signals (Ctrl-C) aimed at us from reaching the server
        if os.name == "nt":
            return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}
        return {"start_new_session": True}
