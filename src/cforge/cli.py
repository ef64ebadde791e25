"""
Command-line interface for cforge.

This module provides the `cforge` CLI tool:

    cforge build [debug|release] [project_dir] [--jobs N] [--kind binary|dynamic] [--verbose]
    cforge run [debug|release] [project_dir] [-- args...]
    cforge clean [project_dir]

Exit codes: 0 on success, 1 when the build fails, 2 on configuration errors,
130 when interrupted.
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from cforge import __version__
from cforge.build import ArtifactKind, BuildOrchestrator, BuildProfile, BuildReport, clean
from cforge.build.error_collector import ErrorSeverity
from cforge.build.errors import BuildCancelledError, ConfigurationError
from cforge.config import ProjectConfig
from cforge.output import init_timer, log, log_error, log_multiline, log_success, log_warning, set_verbose
from cforge.subprocess_utils import safe_run

EXIT_BUILD_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


@dataclass
class BuildArgs:
    """Arguments for the build and run commands."""

    project_dir: Path
    profile: BuildProfile = BuildProfile.DEBUG
    jobs: Optional[int] = None
    kind: Optional[str] = None
    verbose: bool = False
    exe_args: list[str] = field(default_factory=list)


@dataclass
class CleanArgs:
    """Arguments for the clean command."""

    project_dir: Path


def _report_warnings(report: BuildReport) -> None:
    for warning in report.errors.get_errors(ErrorSeverity.WARNING):
        log_warning(warning.error_message)


def _report_failure(report: BuildReport) -> None:
    log_multiline(report.errors.format_errors())
    log_error(report.message)


def _run_build(args: BuildArgs) -> BuildReport:
    config = ProjectConfig.from_project_dir(args.project_dir, kind=args.kind)
    orchestrator = BuildOrchestrator()
    return orchestrator.build(config.target(args.profile), jobs=args.jobs, verbose=args.verbose)


def build_command(args: BuildArgs) -> None:
    """Build the project incrementally.

    Examples:
        cforge build                   # Debug build of the current directory
        cforge build release           # Optimized build
        cforge build release hello     # Optimized build of ./hello
        cforge build --kind dynamic    # Build a shared library
    """
    try:
        report = _run_build(args)
    except ConfigurationError as e:
        log_error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)

    if not report.success:
        _report_failure(report)
        sys.exit(EXIT_BUILD_FAILED)

    _report_warnings(report)
    log_success(report.message)
    sys.exit(0)


def run_command(args: BuildArgs) -> None:
    """Build the project, then run the binary with the arguments after ``--``.

    Examples:
        cforge run                     # Build and run (debug)
        cforge run release -- a b      # Build (release) and run with arguments
    """
    try:
        report = _run_build(args)
    except ConfigurationError as e:
        log_error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)

    if not report.success:
        _report_failure(report)
        sys.exit(EXIT_BUILD_FAILED)
    _report_warnings(report)
    log_success(report.message)

    artifact = report.artifact
    if report.target.kind != ArtifactKind.BINARY or artifact is None:
        log_error(f"Cannot run a {report.target.kind} target; only binaries can be run")
        sys.exit(EXIT_CONFIG_ERROR)

    log(f"Running `{artifact}`")
    try:
        # The program talks to the user directly, so it inherits the terminal
        result = safe_run([str(artifact), *args.exe_args], stdin=None)
    except OSError as e:
        log_error(f"Failed to run {artifact}: {e}")
        sys.exit(EXIT_BUILD_FAILED)
    sys.exit(result.returncode)


def clean_command(args: CleanArgs) -> None:
    """Remove the target directory of the project."""
    try:
        config = ProjectConfig.from_project_dir(args.project_dir)
    except ConfigurationError as e:
        log_error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)

    clean(config.target())
    log_success(f"Removed {config.target_dir}")
    sys.exit(0)


def _split_profile_and_dir(first: Optional[str], second: Optional[str]) -> tuple[BuildProfile, Path]:
    """Interpret the optional ``[profile] [project_dir]`` positionals.

    A single positional is a profile if it names one, otherwise a directory.
    """
    if first is None:
        return BuildProfile.DEBUG, Path.cwd()
    try:
        profile = BuildProfile.parse(first)
    except ValueError:
        if second is not None:
            raise
        return BuildProfile.DEBUG, Path(first)
    return profile, Path(second) if second is not None else Path.cwd()


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("profile", nargs="?", default=None, help="Build profile: debug (default) or release")
    parser.add_argument("project_dir", nargs="?", default=None, help="Project directory (default: current directory)")
    parser.add_argument("-j", "--jobs", type=_positive_int, default=None, help="Maximum concurrent compiles (default: CPU count)")
    parser.add_argument("--kind", default=None, help="Artifact kind: binary (default) or dynamic")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show every phase and compiled file")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cforge",
        description="cforge - incremental builds for C and C++ projects",
    )
    parser.add_argument("--version", action="version", version=f"cforge {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    build_parser = subparsers.add_parser("build", aliases=["b"], help="Build the project if it changed")
    _add_build_arguments(build_parser)

    run_parser = subparsers.add_parser("run", aliases=["r"], help="Build the project and run the binary")
    _add_build_arguments(run_parser)

    clean_parser = subparsers.add_parser("clean", aliases=["c"], help="Remove the target directory")
    clean_parser.add_argument("project_dir", nargs="?", type=Path, default=None, help="Project directory (default: current directory)")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """cforge - incremental builds for C and C++ projects."""
    if argv is None:
        argv = sys.argv[1:]

    # Everything after "--" goes to the program started by `run`
    exe_args: list[str] = []
    if "--" in argv:
        index = argv.index("--")
        argv, exe_args = argv[:index], argv[index + 1 :]

    parser = create_parser()
    parsed_args = parser.parse_args(argv)

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    verbose = getattr(parsed_args, "verbose", False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    init_timer()
    set_verbose(verbose)

    try:
        if parsed_args.command in ("clean", "c"):
            clean_command(CleanArgs(project_dir=parsed_args.project_dir or Path.cwd()))
            return

        try:
            profile, project_dir = _split_profile_and_dir(parsed_args.profile, parsed_args.project_dir)
        except ValueError as e:
            log_error(str(e))
            sys.exit(EXIT_CONFIG_ERROR)

        args = BuildArgs(
            project_dir=project_dir,
            profile=profile,
            jobs=parsed_args.jobs,
            kind=parsed_args.kind,
            verbose=verbose,
            exe_args=exe_args,
        )
        if parsed_args.command in ("run", "r"):
            run_command(args)
        else:
            build_command(args)

    except (KeyboardInterrupt, BuildCancelledError):
        log_error("Build interrupted")
        sys.exit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    main()
