"""
Utility functions for the local AI engine.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List

from .domain.models.conversation import PaperContext


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )

    # Reduce noise from third-party libraries unless debugging
    if level.upper() != "DEBUG":
        for name in ("httpx", "ollama", "urllib3", "requests"):
            logging.getLogger(name).setLevel(logging.WARNING)


def truncate_text(text: str, max_length: int = 100) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= max_length:
        return text
    return text[:max_length-3] + "..."


def format_progress(message: str, percent: int) -> str:
    """Render a progress event as one status line."""
    if percent < 0:
        return f"[ ... ] {message}"
    return f"[{percent:3d}%] {message}"


def load_paper(path: str) -> PaperContext:
    """Load a paper from a JSON record or a plain text file.

    JSON files must hold one object with PaperContext fields; any other file
    becomes the full text, titled after the file name.
    """
    file_path = Path(path)
    raw = file_path.read_text(encoding="utf-8", errors="replace")
    if file_path.suffix.lower() == ".json":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")
        return PaperContext.from_dict(data)
    return PaperContext(title=file_path.stem, text=raw)


def load_papers(paths: List[str]) -> List[PaperContext]:
    return [load_paper(p) for p in paths]
