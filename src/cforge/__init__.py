"""cforge - incremental builds for C and C++ projects.

Usage:
    import cforge

    config = cforge.ProjectConfig.from_project_dir("hello")
    report = cforge.build(config.target(), cforge.BuildProfile.RELEASE)
    print(report.format())
"""

from typing import Optional

from .build import (
    ArtifactKind,
    BuildOrchestrator,
    BuildProfile,
    BuildReport,
    CforgeError,
    ConfigurationError,
    Target,
    Toolchain,
    ToolchainError,
)
from .build import clean as _clean
from .config import ProjectConfig

__version__ = "0.1.0"


def build(
    target: Target,
    profile: Optional[BuildProfile] = None,
    jobs: Optional[int] = None,
    verbose: bool = False,
    toolchain: Optional[Toolchain] = None,
) -> BuildReport:
    """Build ``target`` incrementally. See BuildOrchestrator.build()."""
    return BuildOrchestrator(toolchain=toolchain).build(target, profile, jobs=jobs, verbose=verbose)


def clean(target: Target) -> None:
    """Remove every build output of ``target``."""
    _clean(target)


__all__ = [
    "ArtifactKind",
    "BuildOrchestrator",
    "BuildProfile",
    "BuildReport",
    "CforgeError",
    "ConfigurationError",
    "ProjectConfig",
    "Target",
    "Toolchain",
    "ToolchainError",
    "build",
    "clean",
    "__version__",
]
