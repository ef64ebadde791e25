"""
Build State Tracking - Invalidate the fingerprint store on configuration changes.

Per-file fingerprints only say whether inputs changed; they cannot see a new
compiler, a different artifact kind or a moved include root. Those settings
are recorded in build_state.json next to the fingerprint store after every
successful build. When the current settings differ from the recorded ones the
orchestrator discards the store, which makes every source stale.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from .compiler_driver import CompilerDriver
from .models import Target
from .toolchain import Toolchain

logger = logging.getLogger(__name__)

STATE_FILENAME = "build_state.json"


@dataclass
class BuildState:
    """Configuration a set of object files was produced with."""

    compiler: str
    family: str
    kind: str
    name: str
    include_roots: list[str] = field(default_factory=list)
    compile_flags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BuildState":
        return cls(
            compiler=data["compiler"],
            family=data["family"],
            kind=data["kind"],
            name=data["name"],
            include_roots=list(data.get("include_roots", [])),
            compile_flags=list(data.get("compile_flags", [])),
        )

    def save(self, path: Path) -> None:
        """Write the state as JSON, replacing the previous file atomically."""
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = path.with_suffix(".tmp")
        temp_file.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        temp_file.replace(path)

    @classmethod
    def load(cls, path: Path) -> Optional["BuildState"]:
        """Load a state file.

        Returns:
            The recorded state, or None if the file is missing or unreadable
        """
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return cls.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable build state {path}: {e}")
            return None

    def compare(self, previous: Optional["BuildState"]) -> tuple[bool, list[str]]:
        """Compare against the state of the previous build.

        Returns:
            Tuple of (needs_rebuild, reasons)
        """
        if previous is None:
            return True, ["No previous build state found"]

        reasons = []
        if self.compiler != previous.compiler:
            reasons.append(f"Compiler changed: {previous.compiler} -> {self.compiler}")
        if self.family != previous.family:
            reasons.append(f"Compiler family changed: {previous.family} -> {self.family}")
        if self.kind != previous.kind:
            reasons.append(f"Target kind changed: {previous.kind} -> {self.kind}")
        if self.name != previous.name:
            reasons.append(f"Target name changed: {previous.name} -> {self.name}")
        if self.include_roots != previous.include_roots:
            reasons.append("Include roots have changed")
        if self.compile_flags != previous.compile_flags:
            reasons.append("Compile flags have changed")

        return bool(reasons), reasons


class BuildStateTracker:
    """Reads and writes the build state of one output directory."""

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir
        self.state_file = output_dir / STATE_FILENAME

    @staticmethod
    def create_state(target: Target, toolchain: Toolchain, driver: CompilerDriver) -> BuildState:
        return BuildState(
            compiler=str(toolchain.c_compiler),
            family=toolchain.family.value,
            kind=target.kind.value,
            name=target.name,
            include_roots=[str(root) for root in target.include_roots],
            compile_flags=driver.compile_flags(cxx=False),
        )

    def load_previous_state(self) -> Optional[BuildState]:
        return BuildState.load(self.state_file)

    def save_state(self, state: BuildState) -> None:
        try:
            state.save(self.state_file)
        except OSError as e:
            logger.warning(f"Failed to save build state {self.state_file}: {e}")

    def check_invalidation(
        self, target: Target, toolchain: Toolchain, driver: CompilerDriver
    ) -> tuple[bool, list[str], BuildState]:
        """Compare the current configuration with the last successful build.

        Returns:
            Tuple of (needs_rebuild, reasons, current_state)
        """
        current = self.create_state(target, toolchain, driver)
        needs_rebuild, reasons = current.compare(self.load_previous_state())
        if needs_rebuild:
            logger.info(f"Build configuration changed: {'; '.join(reasons)}")
        return needs_rebuild, reasons, current
