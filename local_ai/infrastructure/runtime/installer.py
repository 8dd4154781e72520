"""
Binary installer - Downloads and unpacks the runtime for the current platform.
"""

from __future__ import annotations
import logging
import os
import shutil
import subprocess
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests

from ...domain.errors import InstallError
from ...domain.models.runtime import ProgressCallback, INDETERMINATE
from .platform import ArchiveKind, PlatformTarget

DOWNLOAD_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class InstallLayout:
    """On-disk layout of a runtime install under one private data directory."""
    data_dir: Path
    target: PlatformTarget

    @property
    def bin_dir(self) -> Path:
        return self.data_dir / "bin"

    @property
    def models_dir(self) -> Path:
        return self.data_dir / "models"

    @property
    def download_path(self) -> Path:
        return self.data_dir / "ollama-download.tmp"

    @property
    def extract_dir(self) -> Path:
        return (self.data_dir / self.target.extract_subdir).resolve()

    @property
    def binary_path(self) -> Path:
        return self.bin_dir / self.target.executable_name


class BinaryInstaller:
    """Installs the runtime binary into an InstallLayout."""

    def __init__(
        self,
        layout: InstallLayout,
        session: Optional[requests.Session] = None,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        logger: Optional[logging.Logger] = None
    ):
        self._layout = layout
        self._session = session or requests.Session()
        self._run = run
        self._logger = logger or logging.getLogger(__name__)

    @property
    def layout(self) -> InstallLayout:
        return self._layout

    @property
    def binary_path(self) -> Path:
        return self._layout.binary_path

    def is_installed(self) -> bool:
        return self._layout.binary_path.is_file()

    def install(self, on_progress: Optional[ProgressCallback] = None) -> bool:
        """Download, unpack and mark the binary executable.

        Returns whether the binary now exists; raises InstallError when a
        step fails.
        """
        layout = self._layout
        target = layout.target
        self._logger.info(f"Installing Ollama for {target.key} from {target.download_url}")

        self._make_dir(layout.bin_dir)

        # binary_path is only written once a download completed
        download = layout.download_path
        self._notify(on_progress, "Downloading Ollama...", 0)
        try:
            self._download(target.download_url, download, on_progress)
            if target.archive_kind is ArchiveKind.RAW_BINARY:
                self._move_into_place(download, layout.binary_path)
            else:
                self._notify(on_progress, "Extracting...", 100)
                if target.archive_kind is ArchiveKind.ZIP:
                    self._extract_zip(download, layout.extract_dir)
                else:
                    self._extract_tar(download, layout.extract_dir)
        finally:
            self._remove(download)

        if not target.is_windows and layout.binary_path.exists():
            self._make_executable(layout.binary_path)

        installed = self.is_installed()
        self._logger.info(f"Ollama installed: {installed} ({layout.binary_path})")
        return installed

    def _download(self, url: str, destination: Path, on_progress: Optional[ProgressCallback]) -> None:
        try:
            with self._session.get(url, stream=True, timeout=(10, None)) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length") or 0)
                received = 0
                last_percent = None
                if total <= 0:
                    self._notify(on_progress, "Downloading Ollama...", INDETERMINATE)
                with open(destination, "wb") as fh:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if not chunk:
                            continue
                        fh.write(chunk)
                        received += len(chunk)
                        if total > 0:
                            percent = min(100, round(received * 100 / total))
                            if percent != last_percent:
                                last_percent = percent
                                self._notify(on_progress, f"Downloading Ollama... {percent}%", percent)
        except requests.exceptions.RequestException as e:
            raise InstallError(f"Download failed: {e}") from e
        except OSError as e:
            raise InstallError(f"Cannot write {destination}: {e}") from e
        self._logger.debug(f"Downloaded {received} bytes to {destination}")

    def _move_into_place(self, source: Path, destination: Path) -> None:
        try:
            os.replace(source, destination)
        except OSError as e:
            raise InstallError(f"Cannot move download to {destination}: {e}") from e

    def _make_dir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(f"Cannot create {path}: {e}") from e

    def _extract_zip(self, archive: Path, destination: Path) -> None:
        self._make_dir(destination)
        root = destination.resolve()
        try:
            with zipfile.ZipFile(archive) as zf:
                for member in zf.namelist():
                    resolved = (root / member).resolve()
                    if resolved != root and root not in resolved.parents:
                        raise InstallError(f"Refusing to extract {member!r} outside {root}")
                zf.extractall(root)
        except (zipfile.BadZipFile, OSError) as e:
            raise InstallError(f"Zip extraction failed: {e}") from e

    def _extract_tar(self, archive: Path, destination: Path) -> None:
        self._make_dir(destination)
        tar = shutil.which("tar") or "/bin/tar"
        try:
            result = self._run(
                [tar, "xzf", str(archive), "-C", str(destination)],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise InstallError(f"Cannot run tar: {e}") from e
        if result.returncode != 0:
            raise InstallError(f"tar exited with {result.returncode}: {(result.stderr or '').strip()}")

    def _make_executable(self, path: Path) -> None:
        try:
            os.chmod(path, 0o755)
        except OSError as e:
            raise InstallError(f"Cannot mark {path} executable: {e}") from e

    def _remove(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self._logger.warning(f"Could not remove {path}: {e}")

    @staticmethod
    def _notify(on_progress: Optional[ProgressCallback], message: str, percent: int) -> None:
        if on_progress:
            on_progress(message, percent)
