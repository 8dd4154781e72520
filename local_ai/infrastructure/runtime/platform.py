"""
Platform resolver - Maps the current OS to the runtime download it needs.
"""

from __future__ import annotations
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ...domain.errors import PlatformUnsupportedError

DEFAULT_RUNTIME_VERSION = "0.16.2"
RELEASE_URL = "https://github.com/ollama/ollama/releases/download/v{version}/{asset}"


class ArchiveKind(Enum):
    """Packaging format of a runtime download."""
    RAW_BINARY = "raw-binary"
    ZIP = "zip"
    TAR_GZ = "tar-gz"


@dataclass(frozen=True)
class PlatformTarget:
    """Everything the installer needs to know for one platform."""
    key: str
    download_url: str
    archive_kind: ArchiveKind
    executable_name: str
    # Where the archive is unpacked, relative to the data dir
    extract_subdir: str = "bin"

    @property
    def is_windows(self) -> bool:
        return self.key == "win"


@dataclass(frozen=True)
class _Asset:
    asset: str
    archive_kind: ArchiveKind
    executable_name: str
    extract_subdir: str = "bin"


# The linux tarball already carries bin/ and lib/ at its root
_ASSETS: Dict[str, _Asset] = {
    "win": _Asset("ollama-windows-amd64.zip", ArchiveKind.ZIP, "ollama.exe"),
    "mac": _Asset("ollama-darwin", ArchiveKind.RAW_BINARY, "ollama"),
    "linux": _Asset("ollama-linux-amd64.tgz", ArchiveKind.TAR_GZ, "ollama", extract_subdir="."),
}


def platform_key(system: Optional[str] = None) -> str:
    """Normalise ``sys.platform`` style names to a lookup key."""
    name = (system if system is not None else sys.platform).lower()
    if name in ("win32", "cygwin", "windows", "win"):
        return "win"
    if name in ("darwin", "mac", "macos"):
        return "mac"
    if name.startswith("linux"):
        return "linux"
    raise PlatformUnsupportedError(f"Unsupported platform: {name}")


def resolve_platform(system: Optional[str] = None, version: str = DEFAULT_RUNTIME_VERSION) -> PlatformTarget:
    key = platform_key(system)
    entry = _ASSETS.get(key)
    if entry is None:
        raise PlatformUnsupportedError(f"No runtime download for platform: {key}")
    return PlatformTarget(
        key=key,
        download_url=RELEASE_URL.format(version=version, asset=entry.asset),
        archive_kind=entry.archive_kind,
        executable_name=entry.executable_name,
        extract_subdir=entry.extract_subdir,
    )
