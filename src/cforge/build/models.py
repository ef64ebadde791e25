"""Data models for the cforge build engine.

Defines the dataclasses that flow between pipeline stages:
- SourceFile / SourceKind: a discovered translation unit or header
- Target / ArtifactKind: what a build produces and where
- IncludeEdge / UnresolvedInclude: the result of resolving one directive
- BuildPlan / CompileStep: the work computed for one invocation
- BuildPhase / BuildReport / CompileFailure: orchestrator state and result
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .build_profiles import BuildProfile
from .error_collector import ErrorCollector
from .errors import ConfigurationError

C_SOURCE_EXTENSIONS = frozenset({".c"})
CXX_SOURCE_EXTENSIONS = frozenset({".cpp", ".cxx", ".cc"})
SOURCE_EXTENSIONS = C_SOURCE_EXTENSIONS | CXX_SOURCE_EXTENSIONS
HEADER_EXTENSIONS = frozenset({".h", ".hpp", ".hxx", ".hh"})


class SourceKind(Enum):
    """Classification of a discovered file."""

    SOURCE = "source"
    HEADER = "header"


@dataclass(frozen=True)
class SourceFile:
    """A discovered file that takes part in a build.

    Attributes:
        path: Absolute, normalized path
        kind: Whether this is a compilable source or a header
        target: Name of the owning target
    """

    path: Path
    kind: SourceKind
    target: str

    @property
    def is_cxx(self) -> bool:
        return self.path.suffix.lower() in CXX_SOURCE_EXTENSIONS


class ArtifactKind(Enum):
    """Kind of artifact a target links into."""

    BINARY = "binary"
    DYNAMIC_LIBRARY = "dynamic_library"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "ArtifactKind":
        """Parse an artifact kind name.

        Accepts the enum values plus the short CLI aliases ``bin``,
        ``dynamic`` and ``dylib``.

        Raises:
            ConfigurationError: If the kind is unknown or unsupported
        """
        aliases = {
            "binary": cls.BINARY,
            "bin": cls.BINARY,
            "dynamic_library": cls.DYNAMIC_LIBRARY,
            "dynamic": cls.DYNAMIC_LIBRARY,
            "dylib": cls.DYNAMIC_LIBRARY,
        }
        key = value.strip().lower()
        if key in aliases:
            return aliases[key]
        if key in ("static", "static_library", "staticlib"):
            raise ConfigurationError("Static library targets are not supported")
        raise ConfigurationError(f"Unknown target kind: {value}")


@dataclass(frozen=True)
class Target:
    """Artifact descriptor for one build.

    Attributes:
        name: Artifact base name (e.g. "hello" -> hello, libhello.so)
        kind: Binary or dynamic library
        source_root: Directory holding the sources (``src``)
        include_roots: Ordered include search roots (``include``)
        target_dir: Root of all build outputs (``target``)
        profile: Build profile; selects the ``target/<profile>`` subtree
    """

    name: str
    kind: ArtifactKind
    source_root: Path
    include_roots: tuple[Path, ...]
    target_dir: Path
    profile: BuildProfile = BuildProfile.DEBUG

    @property
    def output_dir(self) -> Path:
        """Profile-scoped output directory owned by the engine."""
        return self.target_dir / self.profile.value

    @property
    def object_dir(self) -> Path:
        return self.output_dir / "obj"

    def with_profile(self, profile: BuildProfile) -> "Target":
        return dataclasses.replace(self, profile=profile)


@dataclass(frozen=True)
class IncludeEdge:
    """A resolved include directive: ``including`` includes ``header``."""

    including: Path
    header: Path


@dataclass(frozen=True)
class UnresolvedInclude:
    """An include directive that matched no file in the search path.

    Attributes:
        including: File containing the directive
        name: Text between the quotes or angle brackets
        line: 1-based line number of the directive
        system: True for angle-bracket includes
    """

    including: Path
    name: str
    line: int
    system: bool

    def format(self) -> str:
        spelled = f"<{self.name}>" if self.system else f'"{self.name}"'
        return f"{self.including}:{self.line}: unresolved include {spelled}"


class BuildPhase(Enum):
    """States of the build orchestrator."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    GRAPH_BUILDING = "graph_building"
    DIFF_COMPUTING = "diff_computing"
    COMPILING = "compiling"
    LINKING = "linking"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class CompileStep:
    """One compiler invocation: ``source`` -> ``object_path``."""

    source: SourceFile
    object_path: Path
    command: list[str]


@dataclass
class BuildPlan:
    """Work computed for one invocation. Never persisted.

    Attributes:
        compile_steps: Compiler invocations for the stale sources, in source order
        link_command: Linker invocation, or None when no relink is needed
        artifact: Final artifact path
        object_paths: Objects that make up the artifact, in source order
        reasons: Why each stale source must be rebuilt (path -> reason)
        link_reason: Why the artifact must be relinked (empty if it need not be)
    """

    compile_steps: list[CompileStep]
    link_command: Optional[list[str]]
    artifact: Path
    object_paths: list[Path]
    reasons: dict[Path, str] = field(default_factory=dict)
    link_reason: str = ""

    @property
    def stale_sources(self) -> list[SourceFile]:
        return [step.source for step in self.compile_steps]

    @property
    def is_noop(self) -> bool:
        return not self.compile_steps and self.link_command is None


@dataclass
class CompileFailure:
    """A source that failed to compile, with the compiler's output verbatim."""

    source: Path
    returncode: Optional[int]
    output: str


@dataclass
class BuildReport:
    """Result of a build invocation.

    Attributes:
        success: True if the artifact is up to date after the run
        up_to_date: True if nothing had to be compiled or linked
        phase: Final orchestrator phase (DONE or FAILED)
        target: Target that was built
        artifact: Path to the artifact (may not exist on failure)
        compiled: Sources compiled successfully this run
        failures: Every source that failed to compile
        linked: Whether the link step ran
        link_output: Linker output (verbatim) when the link failed
        diagnostics: Unresolved include diagnostics
        errors: Every warning and error collected during the run
        build_time: Wall time in seconds
        message: One-line summary
    """

    success: bool
    up_to_date: bool
    phase: BuildPhase
    target: Target
    artifact: Optional[Path]
    compiled: list[Path] = field(default_factory=list)
    failures: list[CompileFailure] = field(default_factory=list)
    linked: bool = False
    link_output: str = ""
    diagnostics: list[UnresolvedInclude] = field(default_factory=list)
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    build_time: float = 0.0
    message: str = ""

    def format(self) -> str:
        """Render the summary line followed by every collected warning and error."""
        if not self.errors.get_errors():
            return self.message
        return f"{self.message}\n\n{self.errors.format_errors()}"
