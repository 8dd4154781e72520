"""
Model registry - Makes sure a model is present on the runtime before chatting.
"""

from __future__ import annotations
import logging
from typing import Optional

from ..domain.interfaces.runtime_api import RuntimeAPI
from ..domain.models.runtime import ProgressCallback, INDETERMINATE

DEFAULT_MODEL = "llama3.2:1b"


class ModelRegistry:
    """Ensures named models are available locally, pulling when absent."""

    def __init__(
        self,
        runtime: RuntimeAPI,
        default_model: str = DEFAULT_MODEL,
        logger: Optional[logging.Logger] = None
    ):
        self._runtime = runtime
        self._default_model = default_model
        self._logger = logger or logging.getLogger(__name__)

    @property
    def default_model(self) -> str:
        return self._default_model

    @default_model.setter
    def default_model(self, name: str) -> None:
        self._default_model = name

    def ensure_model(self, name: Optional[str] = None, on_progress: Optional[ProgressCallback] = None) -> bool:
        """Return True once ``name`` (default model if omitted) is available."""
        name = name or self._default_model

        if self._runtime.has_model(name):
            self._logger.info(f"Model {name} already available")
            return True

        if on_progress:
            on_progress(f"Downloading model {name}...", 0)

        def _translate(status: str, completed: int, total: int) -> None:
            if not on_progress:
                return
            # total == 0 is treated as unknown, even for a genuinely empty download
            if total > 0:
                percent = round(completed / total * 100)
                on_progress(f"{status} {percent}%", percent)
            else:
                on_progress(status, INDETERMINATE)

        return self._runtime.pull_model(name, _translate)
