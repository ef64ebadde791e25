"""
Error Collector - Structured error collection for a build.

Compile failures are collected per source instead of aborting on the first
one, so a single build reports every broken translation unit. Unresolved
include directives are collected as warnings during the resolve phase.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity level of a build error."""

    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass
class BuildError:
    """Single build error."""

    severity: ErrorSeverity
    phase: str  # "resolve", "compile", "link"
    file_path: Optional[str]
    error_message: str
    output: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def format(self) -> str:
        """Format error as human-readable string.

        Compiler output is reproduced in full; it is the diagnostic the user
        needs.
        """
        lines = [f"[{self.severity.value.upper()}] {self.phase}: {self.error_message}"]

        if self.file_path:
            lines.append(f"  File: {self.file_path}")

        if self.output:
            lines.append(self.output.rstrip())

        return "\n".join(lines)


class ErrorCollector:
    """Collects errors and warnings from every phase of one build."""

    def __init__(self):
        self.errors: list[BuildError] = []
        self.lock = threading.Lock()

    def add_error(self, error: BuildError) -> None:
        """Add error to collection.

        Args:
            error: Build error to add
        """
        with self.lock:
            self.errors.append(error)

        logger.debug(f"Added {error.severity.value} error in phase {error.phase}: {error.error_message}")

    def add_warning(self, phase: str, message: str, file_path: Optional[str] = None) -> None:
        self.add_error(BuildError(ErrorSeverity.WARNING, phase, file_path, message))

    def get_errors(self, severity: Optional[ErrorSeverity] = None) -> list[BuildError]:
        """Get all errors, optionally filtered by severity.

        Args:
            severity: Filter by severity (None = all errors)

        Returns:
            List of build errors
        """
        with self.lock:
            if severity:
                return [e for e in self.errors if e.severity == severity]
            return self.errors.copy()

    def has_errors(self) -> bool:
        """Check if any errors (non-warning) occurred."""
        with self.lock:
            return any(e.severity in (ErrorSeverity.ERROR, ErrorSeverity.FATAL) for e in self.errors)

    def get_error_count(self) -> dict[str, int]:
        """Get count of errors by severity.

        Returns:
            Dictionary with counts by severity
        """
        with self.lock:
            return {
                "warnings": sum(1 for e in self.errors if e.severity == ErrorSeverity.WARNING),
                "errors": sum(1 for e in self.errors if e.severity == ErrorSeverity.ERROR),
                "fatal": sum(1 for e in self.errors if e.severity == ErrorSeverity.FATAL),
                "total": len(self.errors),
            }

    def format_errors(self) -> str:
        """Format every collected entry followed by a one-line summary."""
        with self.lock:
            entries = [err.format() for err in self.errors]
        if not entries:
            return "No errors"
        entries.append(f"Summary: {self.format_summary()}")
        return "\n\n".join(entries)

    def format_summary(self) -> str:
        """Format a brief summary of errors.

        Returns:
            Brief error summary
        """
        counts = self.get_error_count()
        if counts["total"] == 0:
            return "No errors"

        parts = []
        if counts["fatal"] > 0:
            parts.append(f"{counts['fatal']} fatal")
        if counts["errors"] > 0:
            parts.append(f"{counts['errors']} errors")
        if counts["warnings"] > 0:
            parts.append(f"{counts['warnings']} warnings")

        return ", ".join(parts)
