"""
Source and header discovery for cforge targets.

Walks the source root and include roots of a target, classifies every file by
extension and skips build outputs and hidden directories.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from .errors import ConfigurationError
from .models import HEADER_EXTENSIONS, SOURCE_EXTENSIONS, SourceFile, SourceKind, Target

logger = logging.getLogger(__name__)


@dataclass
class SourceCollection:
    """Files discovered for one target.

    Attributes:
        sources: Compilable translation units, sorted by path
        headers: Header files found under the source and include roots
    """

    sources: list[SourceFile] = field(default_factory=list)
    headers: list[SourceFile] = field(default_factory=list)

    @property
    def all_files(self) -> list[SourceFile]:
        return self.sources + self.headers


class SourceScanner:
    """Discovers the sources and headers of a target.

    The target's output tree is never scanned, even when it lives inside a
    scanned root.
    """

    def __init__(self, target: Target):
        self.target = target
        self._excluded = {normalize_path(target.target_dir), normalize_path(target.output_dir)}

    def scan(self) -> SourceCollection:
        """Scan the target's roots.

        Returns:
            SourceCollection with sources and headers

        Raises:
            ConfigurationError: If the source root does not exist
        """
        source_root = self.target.source_root
        if not source_root.is_dir():
            raise ConfigurationError(f"Source directory not found: {source_root}")

        collection = SourceCollection()
        seen: set[Path] = set()

        for path in self._walk(source_root):
            suffix = path.suffix.lower()
            if suffix in SOURCE_EXTENSIONS:
                collection.sources.append(SourceFile(path, SourceKind.SOURCE, self.target.name))
            elif suffix in HEADER_EXTENSIONS:
                collection.headers.append(SourceFile(path, SourceKind.HEADER, self.target.name))
            seen.add(path)

        for include_root in self.target.include_roots:
            if not include_root.is_dir():
                logger.warning(f"Include directory not found, skipping: {include_root}")
                continue
            for path in self._walk(include_root):
                if path in seen or path.suffix.lower() not in HEADER_EXTENSIONS:
                    continue
                seen.add(path)
                collection.headers.append(SourceFile(path, SourceKind.HEADER, self.target.name))

        collection.sources.sort(key=lambda f: f.path)
        collection.headers.sort(key=lambda f: f.path)

        logger.debug(f"Discovered {len(collection.sources)} sources and {len(collection.headers)} headers for {self.target.name}")
        return collection

    def _walk(self, root: Path) -> Iterator[Path]:
        root = normalize_path(root)
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            # Prune in place so os.walk never descends into outputs
            dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and (current / d) not in self._excluded)
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                yield current / filename


def normalize_path(path: Path) -> Path:
    """Absolute, normalized form of a path (symlinks are kept)."""
    return Path(os.path.normpath(path.absolute()))
