"""
Host toolchain detection.

Detection runs once per build and produces an immutable Toolchain value that
is passed to the compiler driver. Tests construct Toolchain values directly.

Selection order:
    1. An explicit compiler (argument or CFORGE_CC environment variable)
    2. The first compiler found on PATH from a prioritized list:
         clang, [Windows: clang-cl, cl], gcc, cc
"""

import logging
import shutil
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .errors import ToolchainError

logger = logging.getLogger(__name__)

Which = Callable[[str], Optional[str]]


class HostPlatform(Enum):
    """Operating system the artifacts are built for (always the host)."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"

    @classmethod
    def current(cls) -> "HostPlatform":
        if sys.platform == "win32":
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MACOS
        return cls.LINUX


class CompilerFamily(Enum):
    """Compiler families; each one spells flags its own way."""

    GCC = "gcc"
    CLANG = "clang"
    MSVC = "msvc"
    CLANG_CL = "clang-cl"

    @property
    def msvc_style(self) -> bool:
        return self in (CompilerFamily.MSVC, CompilerFamily.CLANG_CL)


@dataclass(frozen=True)
class Toolchain:
    """Resolved compilers for one build.

    Attributes:
        family: Compiler family
        c_compiler: Driver for C sources (also links pure C targets)
        cxx_compiler: Driver for C++ sources (also links targets with any C++ source)
        host: Host platform
    """

    family: CompilerFamily
    c_compiler: Path
    cxx_compiler: Path
    host: HostPlatform

    @property
    def display_name(self) -> str:
        return self.c_compiler.name


# (executable, family, C++ companion); MSVC-style drivers compile both languages
_CANDIDATES_POSIX = [
    ("clang", CompilerFamily.CLANG, "clang++"),
    ("gcc", CompilerFamily.GCC, "g++"),
    ("cc", CompilerFamily.GCC, "c++"),
]
_CANDIDATES_WINDOWS = [
    ("clang", CompilerFamily.CLANG, "clang++"),
    ("clang-cl", CompilerFamily.CLANG_CL, None),
    ("cl", CompilerFamily.MSVC, None),
    ("gcc", CompilerFamily.GCC, "g++"),
]


def candidate_compilers(host: HostPlatform) -> list[tuple[str, CompilerFamily, Optional[str]]]:
    """Prioritized compiler candidates for a host."""
    if host == HostPlatform.WINDOWS:
        return list(_CANDIDATES_WINDOWS)
    return list(_CANDIDATES_POSIX)


def infer_family(compiler: str) -> CompilerFamily:
    """Guess the family of a compiler from its executable name."""
    name = Path(compiler).name.lower()
    if name.endswith(".exe"):
        name = name[:-4]
    if "clang-cl" in name:
        return CompilerFamily.CLANG_CL
    if name == "cl":
        return CompilerFamily.MSVC
    if "clang" in name:
        return CompilerFamily.CLANG
    return CompilerFamily.GCC


def cxx_companion_name(compiler: str) -> Optional[str]:
    """Name of the C++ driver that pairs with a C driver (gcc-12 -> g++-12)."""
    path = Path(compiler)
    name = path.name
    for c_name, cxx_name in (("clang", "clang++"), ("gcc", "g++"), ("cc", "c++")):
        position = name.rfind(c_name)
        if position != -1 and not name[position:].startswith(cxx_name):
            companion = name[:position] + cxx_name + name[position + len(c_name):]
            return str(path.with_name(companion)) if path.parent != Path(".") else companion
    return None


def _resolve(name: str, which: Which) -> Optional[Path]:
    found = which(name)
    return Path(found) if found else None


def _build_toolchain(executable: Path, family: CompilerFamily, cxx_name: Optional[str], host: HostPlatform, which: Which) -> Toolchain:
    cxx = executable
    if not family.msvc_style and cxx_name:
        companion = _resolve(cxx_name, which)
        if companion is not None:
            cxx = companion
        else:
            logger.warning(f"C++ driver {cxx_name} not found, using {executable.name} for C++ sources")
    return Toolchain(family=family, c_compiler=executable, cxx_compiler=cxx, host=host)


def detect_toolchain(
    compiler: Optional[str] = None,
    host: Optional[HostPlatform] = None,
    which: Which = shutil.which,
) -> Toolchain:
    """Select the toolchain for this build.

    Args:
        compiler: Explicitly configured compiler name or path
        host: Host platform (defaults to the running platform)
        which: Executable lookup function (shutil.which)

    Returns:
        Toolchain

    Raises:
        ToolchainError: If the configured compiler is missing or none is found on PATH
    """
    host = host or HostPlatform.current()

    if compiler:
        executable = _resolve(compiler, which)
        if executable is None:
            raise ToolchainError(f"Configured compiler not found: {compiler}")
        family = infer_family(compiler)
        toolchain = _build_toolchain(executable, family, cxx_companion_name(compiler), host, which)
        logger.info(f"Using configured compiler {executable} ({family.value})")
        return toolchain

    for name, family, cxx_name in candidate_compilers(host):
        executable = _resolve(name, which)
        if executable is None:
            logger.debug(f"Compiler candidate not found: {name}")
            continue
        toolchain = _build_toolchain(executable, family, cxx_name, host, which)
        logger.info(f"Selected compiler {executable} ({family.value})")
        return toolchain

    tried = ", ".join(name for name, _, _ in candidate_compilers(host))
    raise ToolchainError(f"No C compiler found on PATH (tried: {tried})")
