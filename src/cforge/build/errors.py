"""Exception types for the cforge build engine.

Configuration errors abort a build before any compiler runs. Compile and
link failures are not exceptions: they are collected on the BuildReport.
"""


class CforgeError(Exception):
    """Base class for all cforge errors."""

    pass


class ConfigurationError(CforgeError):
    """Raised when a target cannot be built as configured (bad layout, unsupported kind)."""

    pass


class ToolchainError(ConfigurationError):
    """Raised when no usable compiler can be found."""

    pass


class BuildPhaseError(CforgeError):
    """Raised on an illegal build state machine transition."""

    pass


class BuildCancelledError(CforgeError):
    """Raised when a build is interrupted by a termination signal."""

    def __init__(self, signum: int):
        super().__init__(f"Build cancelled by signal {signum}")
        self.signum = signum
