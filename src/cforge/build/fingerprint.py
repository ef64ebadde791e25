"""File fingerprints and the persistent fingerprint store.

A fingerprint records the state of one file at the end of the last successful
build: SHA256 of its contents, size and modification time. The store maps
normalized absolute paths to fingerprints and lives in the profile output
directory. Alongside the fingerprints it records the headers each source was
compiled against, so a change to which headers a source includes is seen
even when none of the remaining headers changed. It is the only state that
survives between invocations.

The store is loaded once when a build starts and saved once when it succeeds.
A missing, unreadable or corrupted store loads as empty, which simply means a
full rebuild.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from .source_scanner import normalize_path

logger = logging.getLogger(__name__)

STORE_FILENAME = "fingerprints.json"
FORMAT_VERSION = 2


def compute_signature(file_path: Path) -> str:
    """Calculate SHA256 hash of file contents.

    Raises:
        OSError: If the file cannot be read
    """
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


@dataclass(frozen=True)
class Fingerprint:
    """State of one file.

    Attributes:
        path: Normalized absolute path
        signature: SHA256 hex digest of the contents
        size: Size in bytes
        mtime_ns: Modification time in nanoseconds
    """

    path: Path
    signature: str
    size: int
    mtime_ns: int

    @classmethod
    def of(cls, path: Path) -> "Fingerprint":
        """Fingerprint a file on disk.

        Raises:
            OSError: If the file cannot be stat'ed or read
        """
        path = normalize_path(path)
        stat = path.stat()
        return cls(path=path, signature=compute_signature(path), size=stat.st_size, mtime_ns=stat.st_mtime_ns)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization (path is the key)."""
        return {"signature": self.signature, "size": self.size, "mtime_ns": self.mtime_ns}

    @classmethod
    def from_dict(cls, path: str, data: dict[str, Any]) -> "Fingerprint":
        return cls(
            path=Path(path),
            signature=str(data["signature"]),
            size=int(data["size"]),
            mtime_ns=int(data["mtime_ns"]),
        )


@dataclass
class FingerprintStore:
    """In-memory snapshot of the persisted fingerprints.

    Attributes:
        store_file: JSON file backing the store
        entries: Fingerprints keyed by normalized absolute path
        link_inputs: Objects used by the last successful link, in link order
        includes: Header closure each source was last compiled against
    """

    store_file: Path
    entries: dict[Path, Fingerprint] = field(default_factory=dict)
    link_inputs: list[Path] = field(default_factory=list)
    includes: dict[Path, tuple[Path, ...]] = field(default_factory=dict)

    @classmethod
    def for_directory(cls, output_dir: Path) -> "FingerprintStore":
        return cls.load(output_dir / STORE_FILENAME)

    @classmethod
    def load(cls, store_file: Path) -> "FingerprintStore":
        """Load a store, treating any problem as "no prior state"."""
        store = cls(store_file=store_file)
        if not store_file.exists():
            logger.debug(f"Fingerprint store not found: {store_file}")
            return store

        try:
            with open(store_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict) or data.get("version") != FORMAT_VERSION:
                raise ValueError(f"unsupported format version: {data.get('version') if isinstance(data, dict) else data!r}")
            store.entries = {Path(key): Fingerprint.from_dict(key, value) for key, value in data.get("files", {}).items()}
            store.link_inputs = [Path(p) for p in data.get("link_inputs", [])]
            store.includes = {Path(key): tuple(Path(h) for h in headers) for key, headers in data.get("includes", {}).items()}
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unusable fingerprint store {store_file}: {e}")
            return cls(store_file=store_file)

        logger.debug(f"Loaded {len(store.entries)} fingerprints from {store_file}")
        return store

    def save(self) -> None:
        """Save the store atomically (temp file + rename).

        A failed save is logged, not raised: the next build just does more work.
        """
        data = {
            "version": FORMAT_VERSION,
            "files": {str(path): fp.to_dict() for path, fp in sorted(self.entries.items())},
            "link_inputs": [str(p) for p in self.link_inputs],
            "includes": {str(path): [str(h) for h in headers] for path, headers in sorted(self.includes.items())},
        }
        try:
            self.store_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.store_file.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(self.store_file)
            logger.debug(f"Saved {len(self.entries)} fingerprints to {self.store_file}")
        except OSError as e:
            logger.error(f"Failed to save fingerprint store {self.store_file}: {e}")

    def get(self, path: Path) -> Optional[Fingerprint]:
        return self.entries.get(normalize_path(path))

    def update(self, fingerprint: Fingerprint) -> None:
        self.entries[fingerprint.path] = fingerprint

    def update_many(self, fingerprints: Iterable[Fingerprint]) -> None:
        for fingerprint in fingerprints:
            self.update(fingerprint)

    def discard(self, path: Path) -> None:
        path = normalize_path(path)
        self.entries.pop(path, None)
        self.includes.pop(path, None)

    def includes_of(self, source: Path) -> Optional[tuple[Path, ...]]:
        """Headers ``source`` was last compiled against, or None if unknown."""
        return self.includes.get(normalize_path(source))

    def record_includes(self, source: Path, headers: Iterable[Path]) -> None:
        self.includes[normalize_path(source)] = tuple(sorted(normalize_path(h) for h in headers))

    def prune(self, keep: Iterable[Path]) -> int:
        """Drop every entry not in ``keep``. Returns the number dropped."""
        keep_set = {normalize_path(p) for p in keep}
        stale = [path for path in self.entries if path not in keep_set]
        for path in stale:
            del self.entries[path]
        for path in [p for p in self.includes if p not in keep_set]:
            del self.includes[path]
        return len(stale)

    def clear(self) -> None:
        self.entries.clear()
        self.link_inputs = []
        self.includes.clear()

    def __contains__(self, path: object) -> bool:
        return isinstance(path, Path) and normalize_path(path) in self.entries

    def __len__(self) -> int:
        return len(self.entries)
