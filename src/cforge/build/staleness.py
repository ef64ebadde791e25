"""Staleness detection for incremental builds.

A source must be recompiled when any of these hold:

    (a) it has no fingerprint from the previous build
    (b) its fingerprint changed
    (c) a header in its dependency closure has no fingerprint or changed
    (d) the set of headers in its closure differs from the set it was last
        compiled against (a header was deleted, added or shadowed)
    (e) its object file is missing

Fingerprints are compared cheaply first: when size and modification time
match the stored record the file is taken as unchanged without hashing.
Only files whose stat differs are hashed, and a file whose hash still matches
counts as unchanged (it was touched, not edited).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .dependency_graph import DependencyGraph
from .fingerprint import Fingerprint, FingerprintStore, compute_signature
from .models import SourceFile
from .source_scanner import normalize_path

logger = logging.getLogger(__name__)


class FileProbe:
    """Current fingerprints of files, computed lazily and once per run.

    The snapshot taken here is what gets persisted after a successful build,
    so an edit made while compilers run is still seen as a change next time.
    """

    def __init__(self, store: FingerprintStore):
        self.store = store
        self._current: dict[Path, Optional[Fingerprint]] = {}
        self.hashed: set[Path] = set()

    def current(self, path: Path) -> Optional[Fingerprint]:
        """Current fingerprint of ``path``, or None if it cannot be read."""
        path = normalize_path(path)
        if path in self._current:
            return self._current[path]

        fingerprint: Optional[Fingerprint]
        try:
            stat = path.stat()
            prior = self.store.get(path)
            if prior is not None and prior.mtime_ns == stat.st_mtime_ns and prior.size == stat.st_size:
                fingerprint = prior
            else:
                self.hashed.add(path)
                fingerprint = Fingerprint(path=path, signature=compute_signature(path), size=stat.st_size, mtime_ns=stat.st_mtime_ns)
        except OSError as e:
            logger.debug(f"Cannot fingerprint {path}: {e}")
            fingerprint = None

        self._current[path] = fingerprint
        return fingerprint

    def change_reason(self, path: Path) -> Optional[str]:
        """Why ``path`` differs from the stored fingerprint, or None if it does not."""
        prior = self.store.get(path)
        if prior is None:
            return "no previous fingerprint"
        current = self.current(path)
        if current is None:
            return "file is missing"
        if current.signature != prior.signature:
            return "content changed"
        return None


@dataclass
class StalenessResult:
    """Outcome of staleness detection.

    Attributes:
        stale: Stale sources mapped to the reason, in source order
        fresh: Sources that can reuse their object file
    """

    stale: dict[Path, str] = field(default_factory=dict)
    fresh: list[Path] = field(default_factory=list)

    def is_stale(self, source: Path) -> bool:
        return normalize_path(source) in self.stale


class StalenessDetector:
    """Decides which sources must be recompiled and whether to relink."""

    def __init__(self, store: FingerprintStore, probe: Optional[FileProbe] = None):
        self.store = store
        self.probe = probe or FileProbe(store)

    def source_reason(self, source: Path, closure: Iterable[Path], object_path: Path) -> Optional[str]:
        """Why ``source`` must be recompiled, or None if its object is reusable."""
        reason = self.probe.change_reason(source)
        if reason is not None:
            return f"source: {reason}"

        headers = sorted(normalize_path(h) for h in closure)
        for header in headers:
            reason = self.probe.change_reason(header)
            if reason is not None:
                return f"header {header.name}: {reason}"

        recorded = self.store.includes_of(source)
        if recorded is None:
            return "no record of included headers"
        if list(recorded) != headers:
            return "included headers changed"

        if not object_path.exists():
            return "object file missing"

        return None

    def detect(self, sources: Iterable[SourceFile], graph: DependencyGraph, object_paths: Mapping[Path, Path]) -> StalenessResult:
        """Classify every source as stale or fresh.

        Args:
            sources: Discovered sources
            graph: Dependency graph holding each source's closure
            object_paths: Object file path of each source

        Returns:
            StalenessResult
        """
        result = StalenessResult()
        for source in sources:
            path = normalize_path(source.path)
            reason = self.source_reason(path, graph.closure(path), object_paths[path])
            if reason is None:
                result.fresh.append(path)
            else:
                logger.debug(f"Stale: {path} ({reason})")
                result.stale[path] = reason

        logger.debug(f"Staleness: {len(result.stale)} stale, {len(result.fresh)} fresh, {len(self.probe.hashed)} files hashed")
        return result

    def link_reason(self, artifact: Path, object_paths: list[Path], sources_compiled: bool) -> Optional[str]:
        """Why the artifact must be relinked, or None if it is up to date."""
        if sources_compiled:
            return "sources recompiled"
        if not artifact.exists():
            return "artifact missing"
        if [normalize_path(p) for p in object_paths] != self.store.link_inputs:
            return "link inputs changed"
        return None
