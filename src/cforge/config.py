"""
Project configuration for cforge.

A cforge project is a directory with a fixed layout:

    <project>/
        src/        sources (and private headers)
        include/    public headers (optional)
        target/     build outputs, one subdirectory per profile

The project name defaults to the directory name. Environment variables
override the parts of the layout that vary between machines:

    CFORGE_TARGET_DIR   root of the build outputs (default: <project>/target)
    CFORGE_CC           compiler to use instead of the detected one
    CFORGE_JOBS         maximum concurrent compiles
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from .build.build_profiles import BuildProfile
from .build.errors import ConfigurationError
from .build.models import ArtifactKind, Target

logger = logging.getLogger(__name__)

SOURCE_DIR = "src"
INCLUDE_DIR = "include"
TARGET_DIR = "target"


@dataclass(frozen=True)
class ProjectConfig:
    """Resolved layout of a cforge project.

    Attributes:
        project_dir: Absolute project directory
        name: Artifact base name
        kind: Artifact kind
        target_dir: Root of all build outputs
    """

    project_dir: Path
    name: str
    kind: ArtifactKind
    target_dir: Path

    @classmethod
    def from_project_dir(
        cls,
        project_dir: Union[str, Path],
        kind: Union[ArtifactKind, str, None] = None,
        name: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ProjectConfig":
        """Read the layout of the project in ``project_dir``.

        Args:
            project_dir: Project directory
            kind: Artifact kind or its name (default: binary)
            name: Artifact name (default: directory name)
            environ: Environment to read overrides from (default: os.environ)

        Raises:
            ConfigurationError: If the directory or its ``src`` directory is missing
        """
        env = os.environ if environ is None else environ
        project_dir = Path(project_dir).resolve()
        if not project_dir.is_dir():
            raise ConfigurationError(f"Project directory not found: {project_dir}")
        if not (project_dir / SOURCE_DIR).is_dir():
            raise ConfigurationError(f"Not a cforge project (no {SOURCE_DIR}/ directory): {project_dir}")

        if kind is None:
            kind = ArtifactKind.BINARY
        elif isinstance(kind, str):
            kind = ArtifactKind.parse(kind)

        target_dir = Path(env["CFORGE_TARGET_DIR"]).resolve() if env.get("CFORGE_TARGET_DIR") else project_dir / TARGET_DIR
        config = cls(project_dir=project_dir, name=name or project_dir.name, kind=kind, target_dir=target_dir)
        logger.debug(f"Project {config.name}: kind={config.kind}, target_dir={config.target_dir}")
        return config

    @property
    def source_root(self) -> Path:
        return self.project_dir / SOURCE_DIR

    @property
    def include_roots(self) -> tuple[Path, ...]:
        include = self.project_dir / INCLUDE_DIR
        return (include,) if include.is_dir() else ()

    def target(self, profile: BuildProfile = BuildProfile.DEBUG) -> Target:
        return Target(
            name=self.name,
            kind=self.kind,
            source_root=self.source_root,
            include_roots=self.include_roots,
            target_dir=self.target_dir,
            profile=profile,
        )
