"""Runtime lifecycle package - platform lookup, install, process supervision."""

from .installer import BinaryInstaller, InstallLayout
from .platform import ArchiveKind, PlatformTarget, resolve_platform
from .polling import PollOutcome, PollPolicy, poll_until
from .supervisor import ServerSupervisor

__all__ = [
    'ArchiveKind',
    'BinaryInstaller',
    'InstallLayout',
    'PlatformTarget',
    'PollOutcome',
    'PollPolicy',
    'ServerSupervisor',
    'poll_until',
    'resolve_platform',
]
