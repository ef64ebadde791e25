"""Compiler driver: command lines for compiling and linking.

Every compiler family is a tagged variant: a CompilerFamily value mapped to
one FlagSpelling record. CompilerDriver is the single dispatch point that
reads the record, so every family shares the same semantics:

    debug profile    -> debug symbols, no optimization
    release profile  -> optimization, no debug symbols
    dynamic library  -> position-independent code + shared-object link flag

Artifact naming follows the host convention:

    binary           hello (Linux/macOS), hello.exe (Windows)
    dynamic library  libhello.so (Linux), libhello.dylib (macOS), hello.dll (Windows)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .build_profiles import BuildProfile, get_profile
from .errors import ConfigurationError
from .models import ArtifactKind, SourceFile, Target
from .source_scanner import normalize_path
from .toolchain import CompilerFamily, HostPlatform, Toolchain


@dataclass(frozen=True)
class FlagSpelling:
    """How one compiler family spells each build concept.

    Output flags are templates; ``{path}`` is replaced by the output path.
    """

    preamble: tuple[str, ...]
    warnings: tuple[str, ...]
    debug_info: tuple[str, ...]
    no_optimize: tuple[str, ...]
    optimize: tuple[str, ...]
    position_independent: tuple[str, ...]
    cxx_flags: tuple[str, ...]
    include_prefix: str
    compile_only: tuple[str, ...]
    object_output: tuple[str, ...]
    link_output: tuple[str, ...]
    shared_link: tuple[str, ...]
    macos_shared_link: tuple[str, ...]
    object_suffix: str


_GNU_LIKE = FlagSpelling(
    preamble=(),
    warnings=("-Wall", "-Wextra"),
    debug_info=("-g",),
    no_optimize=("-O0",),
    optimize=("-O3",),
    position_independent=("-fPIC",),
    cxx_flags=(),
    include_prefix="-I",
    compile_only=("-c",),
    object_output=("-o", "{path}"),
    link_output=("-o", "{path}"),
    shared_link=("-shared",),
    macos_shared_link=("-dynamiclib",),
    object_suffix=".o",
)

_MSVC_LIKE = FlagSpelling(
    preamble=("/nologo",),
    warnings=("/W4",),
    debug_info=("/Z7",),
    no_optimize=("/Od",),
    optimize=("/O2",),
    position_independent=(),
    cxx_flags=("/EHsc",),
    include_prefix="/I",
    compile_only=("/c",),
    object_output=("/Fo{path}",),
    link_output=("/Fe{path}",),
    shared_link=("/LD",),
    macos_shared_link=("/LD",),
    object_suffix=".obj",
)

SPELLINGS: dict[CompilerFamily, FlagSpelling] = {
    CompilerFamily.GCC: _GNU_LIKE,
    CompilerFamily.CLANG: _GNU_LIKE,
    CompilerFamily.MSVC: _MSVC_LIKE,
    CompilerFamily.CLANG_CL: _MSVC_LIKE,
}


def artifact_filename(name: str, kind: ArtifactKind, host: HostPlatform) -> str:
    """File name of an artifact under the host naming convention."""
    if kind == ArtifactKind.BINARY:
        return f"{name}.exe" if host == HostPlatform.WINDOWS else name
    if kind == ArtifactKind.DYNAMIC_LIBRARY:
        if host == HostPlatform.WINDOWS:
            return f"{name}.dll"
        if host == HostPlatform.MACOS:
            return f"lib{name}.dylib"
        return f"lib{name}.so"
    raise ConfigurationError(f"Unsupported target kind: {kind}")


def _expand(template: tuple[str, ...], path: Path) -> list[str]:
    return [part.format(path=path) for part in template]


class CompilerDriver:
    """Generates compile and link command lines for one target and profile."""

    def __init__(self, toolchain: Toolchain, profile: BuildProfile, kind: ArtifactKind):
        if kind not in (ArtifactKind.BINARY, ArtifactKind.DYNAMIC_LIBRARY):
            raise ConfigurationError(f"Unsupported target kind: {kind}")
        self.toolchain = toolchain
        self.profile = profile
        self.kind = kind
        self.spelling = SPELLINGS[toolchain.family]

    @property
    def object_suffix(self) -> str:
        return self.spelling.object_suffix

    def object_path(self, target: Target, source: Path) -> Path:
        """Object file for ``source``, mirroring its place under the source root.

        Sources outside the root mirror their whole absolute path under
        ``obj/_external`` so two files with the same name never share an object.
        """
        source = normalize_path(source)
        try:
            relative = source.relative_to(normalize_path(target.source_root))
        except ValueError:
            relative = Path("_external", *source.parts[1:])
        return target.object_dir / f"{relative}{self.object_suffix}"

    def artifact_path(self, target: Target) -> Path:
        return target.output_dir / artifact_filename(target.name, self.kind, self.toolchain.host)

    def profile_flags(self) -> list[str]:
        settings = get_profile(self.profile)
        flags: list[str] = []
        if settings.debug_info:
            flags.extend(self.spelling.debug_info)
        flags.extend(self.spelling.optimize if settings.optimize else self.spelling.no_optimize)
        return flags

    def compile_flags(self, cxx: bool = False) -> list[str]:
        """Flags shared by every compile of this target (no paths)."""
        flags = [*self.spelling.preamble, *self.spelling.warnings, *self.profile_flags()]
        if self.kind == ArtifactKind.DYNAMIC_LIBRARY and self.toolchain.host != HostPlatform.WINDOWS:
            flags.extend(self.spelling.position_independent)
        if cxx:
            flags.extend(self.spelling.cxx_flags)
        return flags

    def link_flags(self) -> list[str]:
        if self.kind != ArtifactKind.DYNAMIC_LIBRARY:
            return []
        if self.toolchain.host == HostPlatform.MACOS:
            return list(self.spelling.macos_shared_link)
        return list(self.spelling.shared_link)

    def compile_command(self, source: SourceFile, object_path: Path, include_dirs: Sequence[Path]) -> list[str]:
        """Command compiling one source into ``object_path``."""
        compiler = self.toolchain.cxx_compiler if source.is_cxx else self.toolchain.c_compiler
        return [
            str(compiler),
            *self.compile_flags(cxx=source.is_cxx),
            *[f"{self.spelling.include_prefix}{directory}" for directory in include_dirs],
            *self.spelling.compile_only,
            str(source.path),
            *_expand(self.spelling.object_output, object_path),
        ]

    def link_command(self, objects: Sequence[Path], artifact: Path, cxx: bool = False) -> list[str]:
        """Command linking ``objects`` into ``artifact``.

        Args:
            objects: Object files in link order
            artifact: Output path
            cxx: Link with the C++ driver (target has C++ sources)
        """
        linker = self.toolchain.cxx_compiler if cxx else self.toolchain.c_compiler
        return [
            str(linker),
            *self.spelling.preamble,
            *self.link_flags(),
            *[str(obj) for obj in objects],
            *_expand(self.spelling.link_output, artifact),
        ]
