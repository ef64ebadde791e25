"""Build Profile Configuration.

A profile only decides optimization and debug information. It never changes
which sources are built or how dependencies are tracked.

Design:
    Profiles declare WHAT they want (optimized or not, symbols or not) as a
    ProfileFlags record. Each compiler family spells those wishes in its own
    flag syntax (see compiler_driver.FlagSpelling), so the semantics are the
    same for every compiler.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BuildProfile(Enum):
    """Build profile enum for type-safe profile selection."""

    DEBUG = "debug"
    RELEASE = "release"

    def __str__(self) -> str:
        """Return the string value for directory names and display."""
        return self.value

    @classmethod
    def parse(cls, value: str) -> "BuildProfile":
        """Parse a profile name, case-insensitively.

        Raises:
            ValueError: If the name is not a known profile
        """
        try:
            return cls(value.lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown build profile '{value}' (expected one of: {choices})") from None


@dataclass(frozen=True)
class ProfileFlags:
    """Semantic description of a build profile.

    Attributes:
        name: Profile identifier (matches BuildProfile enum value)
        description: Human-readable profile description
        optimize: Whether the compiler should optimize
        debug_info: Whether the compiler should emit debug symbols
    """

    name: str
    description: str
    optimize: bool
    debug_info: bool


PROFILES: dict[BuildProfile, ProfileFlags] = {
    BuildProfile.DEBUG: ProfileFlags(
        name="debug",
        description="debug symbols + no optimization",
        optimize=False,
        debug_info=True,
    ),
    BuildProfile.RELEASE: ProfileFlags(
        name="release",
        description="optimized",
        optimize=True,
        debug_info=False,
    ),
}


def get_profile(profile: BuildProfile) -> ProfileFlags:
    """Get profile configuration by enum."""
    return PROFILES[profile]


def format_profile_banner(profile: BuildProfile, compiler: Optional[str] = None) -> str:
    """Format a build profile banner for display.

    Args:
        profile: BuildProfile enum value
        compiler: Compiler name (optional)

    Returns:
        Formatted banner string
    """
    parts = [f"PROFILE={profile.value}"]
    if compiler:
        parts.append(f"COMPILER={compiler}")

    return " ".join(parts)


def print_profile_banner(profile: BuildProfile, compiler: Optional[str] = None) -> None:
    """Print the build profile banner to the console."""
    from ..output import log

    log(format_profile_banner(profile, compiler=compiler))
