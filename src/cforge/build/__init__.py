"""Incremental build engine for C and C++ targets."""

from .build_profiles import BuildProfile, ProfileFlags, get_profile
from .compiler_driver import CompilerDriver, artifact_filename
from .errors import BuildCancelledError, BuildPhaseError, CforgeError, ConfigurationError, ToolchainError
from .models import ArtifactKind, BuildPhase, BuildPlan, BuildReport, CompileFailure, SourceFile, SourceKind, Target
from .orchestrator import BuildOrchestrator, clean
from .toolchain import CompilerFamily, HostPlatform, Toolchain, detect_toolchain

__all__ = [
    "ArtifactKind",
    "BuildCancelledError",
    "BuildOrchestrator",
    "BuildPhase",
    "BuildPhaseError",
    "BuildPlan",
    "BuildProfile",
    "BuildReport",
    "CforgeError",
    "CompileFailure",
    "CompilerDriver",
    "CompilerFamily",
    "ConfigurationError",
    "HostPlatform",
    "ProfileFlags",
    "SourceFile",
    "SourceKind",
    "Target",
    "Toolchain",
    "ToolchainError",
    "artifact_filename",
    "clean",
    "detect_toolchain",
    "get_profile",
]
