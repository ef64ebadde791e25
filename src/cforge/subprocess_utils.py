"""Subprocess utilities for compiler and linker invocations.

Wrappers around the subprocess module that apply platform-specific flags
(no console window flashing on Windows, no stdin inheritance), plus process
tree termination used when a build is cancelled.
"""

import logging
import subprocess
import sys
from typing import Any

import psutil

logger = logging.getLogger(__name__)


def get_subprocess_creation_flags() -> int:
    """Get platform-specific subprocess creation flags.

    Returns:
        - Windows: subprocess.CREATE_NO_WINDOW (prevents console window)
        - Other platforms: 0 (no special flags)
    """
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


def _apply_defaults(kwargs: dict[str, Any]) -> dict[str, Any]:
    default_flags = get_subprocess_creation_flags()

    if "creationflags" in kwargs:
        kwargs["creationflags"] = kwargs["creationflags"] | default_flags
    elif default_flags:
        kwargs["creationflags"] = default_flags

    # Compilers never read stdin; keep them off the terminal's input handle
    if "stdin" not in kwargs:
        kwargs["stdin"] = subprocess.DEVNULL

    return kwargs


def safe_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
    """Execute subprocess.run with platform-specific flags.

    Custom ``creationflags`` are OR'd with the platform defaults. ``stdin``
    defaults to DEVNULL; pass ``stdin=None`` to inherit the terminal.
    """
    return subprocess.run(cmd, **_apply_defaults(kwargs))


def safe_popen(cmd: list[str], **kwargs: Any) -> subprocess.Popen:
    """Execute subprocess.Popen with platform-specific flags.

    Same defaults as safe_run(), for callers that need the process handle
    (e.g. to terminate it on cancellation).
    """
    return subprocess.Popen(cmd, **_apply_defaults(kwargs))


def terminate_process_tree(pid: int, timeout: float = 3.0) -> int:
    """Terminate a process and all of its children.

    Children are terminated before their parent. Processes still alive after
    ``timeout`` seconds are killed.

    Args:
        pid: Root process ID
        timeout: Grace period before force killing

    Returns:
        Number of processes signalled
    """
    try:
        root = psutil.Process(pid)
        processes = root.children(recursive=True)
        processes.reverse()
        processes.append(root)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {pid} already terminated")
        return 0

    signalled: list[psutil.Process] = []
    for proc in processes:
        try:
            proc.terminate()
            signalled.append(proc)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            logger.warning(f"Failed to terminate process {proc.pid}: {e}")

    _gone, alive = psutil.wait_procs(signalled, timeout=timeout)
    for proc in alive:
        try:
            proc.kill()
            logger.warning(f"Force killed process {proc.pid}")
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            logger.warning(f"Failed to force kill process {proc.pid}: {e}")

    return len(signalled)
