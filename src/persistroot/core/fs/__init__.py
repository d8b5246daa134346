"""Primitivas de filesystem do host (montagens, mountinfo, comandos)."""

from .attrs import directory_mode, enforce_attributes  # noqa: F401
from .commands import CommandFailedError, run_command  # noqa: F401
from .host import HostFilesystem  # noqa: F401
from .mountinfo import (  # noqa: F401
    MountRecord,
    bind_source,
    containing_mount,
    find_mount,
    is_bind_of,
    mounts_under,
    parse_mountinfo,
    read_mountinfo,
)
