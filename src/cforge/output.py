"""
Timestamped console output for cforge.

All user-facing output is prefixed with the elapsed time since program launch
in MM:SS.cc format, which shows where a build spends its time.

Example output:
    00:00.01 PROFILE=debug COMPILER=clang
    00:00.02 [1/4] Scanning sources...
    00:00.05      Found 12 sources, 30 headers
    00:01.23 Finished debug target `hello` in 1.22s

Usage:
    from cforge.output import log, log_phase, log_detail

    log_phase(1, 4, "Scanning sources...")
    log_detail("Found 12 sources")
"""

import sys
import time
from typing import Optional, TextIO

_start_time: Optional[float] = None
_output_stream: Optional[TextIO] = None
_verbose: bool = True


def init_timer(output_stream: Optional[TextIO] = None) -> None:
    """
    Initialize the program timer.

    Called automatically on first use if the program does not call it.

    Args:
        output_stream: Optional output stream (defaults to sys.stdout)
    """
    global _start_time, _output_stream
    _start_time = time.time()
    _output_stream = output_stream


def set_verbose(verbose: bool) -> None:
    """
    Set verbose mode.

    Args:
        verbose: If True, all messages are printed. If False, verbose_only
            messages are suppressed.
    """
    global _verbose
    _verbose = verbose


def get_elapsed() -> float:
    """Elapsed time in seconds since the timer was initialized."""
    if _start_time is None:
        init_timer(_output_stream)
    return time.time() - _start_time  # type: ignore


def format_timestamp() -> str:
    """Format the current elapsed time as MM:SS.cc."""
    elapsed = get_elapsed()
    minutes = int(elapsed // 60)
    seconds = elapsed % 60
    return f"{minutes:02d}:{seconds:05.2f}"


def _print(message: str) -> None:
    # Resolved per call so pytest's capsys and redirected stdout are honored
    stream = _output_stream if _output_stream is not None else sys.stdout
    stream.write(f"{format_timestamp()} {message}\n")
    stream.flush()


def log(message: str, verbose_only: bool = False) -> None:
    """
    Log a message with timestamp.

    Args:
        message: Message to log
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(message)


def log_phase(phase: int, total: int, message: str, verbose_only: bool = False) -> None:
    """
    Log a build phase message.

    Format: [N/M] message
    """
    if verbose_only and not _verbose:
        return
    _print(f"[{phase}/{total}] {message}")


def log_detail(message: str, indent: int = 6, verbose_only: bool = False) -> None:
    if verbose_only and not _verbose:
        return
    _print(f"{' ' * indent}{message}")


def log_compile(filename: str, reason: str = "", verbose_only: bool = True) -> None:
    """
    Log one compiled source.

    Format:      Compiling filename (reason)
    """
    if verbose_only and not _verbose:
        return
    suffix = f" ({reason})" if reason else ""
    _print(f"      Compiling {filename}{suffix}")


def log_multiline(text: str) -> None:
    """Log compiler or linker output, one timestamped line per output line."""
    for line in text.rstrip().splitlines():
        _print(line)


def log_error(message: str) -> None:
    _print(f"ERROR: {message}")


def log_warning(message: str) -> None:
    _print(f"WARNING: {message}")


def log_success(message: str) -> None:
    _print(message)
