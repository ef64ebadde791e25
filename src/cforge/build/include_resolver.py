"""
Include directive parsing and resolution.

Finds ``#include`` directives lexically (no preprocessor evaluation, so every
directive counts, even inside ``#if 0``) and maps each one to a file on disk
using the compiler's search order:

    "x.h"   directory of the including file, then include roots in order
    <x.h>   include roots in order

Directives that match nothing are reported as UnresolvedInclude diagnostics.
They are advisory: the compiler has the final word on missing headers.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .models import IncludeEdge, UnresolvedInclude
from .source_scanner import normalize_path

logger = logging.getLogger(__name__)

_INCLUDE_PATTERN = re.compile(
    r'^[ \t]*#[ \t]*include[ \t]*([<"])([^<>"\r\n]+)([>"])',
    re.MULTILINE,
)
_CLOSING = {"<": ">", '"': '"'}


@dataclass(frozen=True)
class IncludeDirective:
    """One lexical include directive."""

    name: str
    system: bool
    line: int


@dataclass
class ResolvedIncludes:
    """Direct includes of one file."""

    edges: list[IncludeEdge] = field(default_factory=list)
    unresolved: list[UnresolvedInclude] = field(default_factory=list)

    @property
    def headers(self) -> list[Path]:
        return [edge.header for edge in self.edges]


def parse_include_directives(text: str) -> list[IncludeDirective]:
    """Extract include directives from C/C++ source text.

    Args:
        text: File contents

    Returns:
        Directives in order of appearance
    """
    directives = []
    for match in _INCLUDE_PATTERN.finditer(text):
        opening, name, closing = match.groups()
        if _CLOSING[opening] != closing:
            continue
        name = name.strip()
        if not name:
            continue
        line = text.count("\n", 0, match.start()) + 1
        directives.append(IncludeDirective(name=name, system=opening == "<", line=line))
    return directives


class IncludeResolver:
    """Resolves include directives against an ordered list of include roots."""

    def __init__(self, include_roots: Sequence[Path]):
        """
        Args:
            include_roots: Configured include directories, in search order
        """
        self.include_roots = tuple(normalize_path(root) for root in include_roots)

    def search_path(self, including: Path, system: bool) -> list[Path]:
        """Directories searched for a directive in ``including``."""
        if system:
            return list(self.include_roots)
        return [normalize_path(including).parent, *self.include_roots]

    def resolve_directive(self, including: Path, directive: IncludeDirective) -> Optional[Path]:
        """Map one directive to a file, first match wins."""
        for directory in self.search_path(including, directive.system):
            candidate = normalize_path(directory / directive.name)
            if candidate.is_file():
                return candidate
        return None

    def resolve_text(self, including: Path, text: str) -> ResolvedIncludes:
        """Resolve every directive found in ``text``, which is the content of ``including``."""
        including = normalize_path(including)
        result = ResolvedIncludes()
        for directive in parse_include_directives(text):
            header = self.resolve_directive(including, directive)
            if header is None:
                result.unresolved.append(
                    UnresolvedInclude(
                        including=including,
                        name=directive.name,
                        line=directive.line,
                        system=directive.system,
                    )
                )
                continue
            result.edges.append(IncludeEdge(including=including, header=header))
        return result

    def resolve_file(self, path: Path) -> ResolvedIncludes:
        """Read ``path`` and resolve its direct includes.

        An unreadable file has no includes; the compiler will report it.
        """
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Cannot read {path} for include scanning: {e}")
            return ResolvedIncludes()
        return self.resolve_text(path, text)
