"""
Build orchestration for cforge targets.

One BuildOrchestrator.build() call runs the whole incremental pipeline:

    1. Discover sources and headers under the target roots
    2. Build the include dependency graph
    3. Load the fingerprint store and compute which sources are stale
    4. Compile stale sources concurrently, then link

Progress is tracked by a small state machine:

    IDLE -> DISCOVERING -> GRAPH_BUILDING -> DIFF_COMPUTING -> COMPILING -> LINKING -> DONE
                                                          \\-> DONE (up to date)
    COMPILING / LINKING -> FAILED

The fingerprint store is written only after a fully successful build, from
the snapshot taken while computing the diff. A failed or interrupted build
leaves the previous store on disk, so the next run retries everything that
was not confirmed good.
"""

import dataclasses
import logging
import os
import shutil
import signal
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..output import log_compile, log_detail, log_phase
from .build_profiles import BuildProfile, print_profile_banner
from .build_state import BuildStateTracker
from .compilation_executor import CompilationExecutor, CompilationJob, JobState
from .compiler_driver import CompilerDriver
from .dependency_graph import DependencyGraph, DependencyGraphBuilder
from .error_collector import BuildError, ErrorCollector, ErrorSeverity
from .errors import BuildCancelledError, BuildPhaseError, ConfigurationError
from .fingerprint import FingerprintStore
from .include_resolver import IncludeResolver
from .models import BuildPhase, BuildPlan, BuildReport, CompileFailure, CompileStep, Target
from .source_scanner import SourceCollection, SourceScanner, normalize_path
from .staleness import FileProbe, StalenessDetector, StalenessResult
from .toolchain import Toolchain, detect_toolchain

logger = logging.getLogger(__name__)

TOTAL_PHASES = 4

_TRANSITIONS: dict[BuildPhase, frozenset[BuildPhase]] = {
    BuildPhase.IDLE: frozenset({BuildPhase.DISCOVERING}),
    BuildPhase.DISCOVERING: frozenset({BuildPhase.GRAPH_BUILDING}),
    BuildPhase.GRAPH_BUILDING: frozenset({BuildPhase.DIFF_COMPUTING}),
    BuildPhase.DIFF_COMPUTING: frozenset({BuildPhase.COMPILING, BuildPhase.DONE}),
    BuildPhase.COMPILING: frozenset({BuildPhase.LINKING, BuildPhase.FAILED}),
    BuildPhase.LINKING: frozenset({BuildPhase.DONE, BuildPhase.FAILED}),
    BuildPhase.DONE: frozenset(),
    BuildPhase.FAILED: frozenset(),
}


def default_jobs() -> Optional[int]:
    """Worker count from CFORGE_JOBS, or None for the CPU count."""
    value = os.environ.get("CFORGE_JOBS")
    if not value:
        return None
    try:
        jobs = int(value)
    except ValueError as e:
        raise ConfigurationError(f"CFORGE_JOBS must be a positive integer, got {value!r}") from e
    if jobs < 1:
        raise ConfigurationError(f"CFORGE_JOBS must be a positive integer, got {value!r}")
    return jobs


class BuildOrchestrator:
    """Runs incremental builds of cforge targets.

    The toolchain is detected once, on first use, and reused for every build
    run by this orchestrator. Pass one in to skip detection.
    """

    def __init__(self, toolchain: Optional[Toolchain] = None):
        self._toolchain = toolchain
        self.phase = BuildPhase.IDLE
        self.phase_history: list[BuildPhase] = [BuildPhase.IDLE]
        self._executor: Optional[CompilationExecutor] = None
        self.errors = ErrorCollector()

    @property
    def toolchain(self) -> Toolchain:
        if self._toolchain is None:
            self._toolchain = detect_toolchain(os.environ.get("CFORGE_CC") or None)
        return self._toolchain

    def build(
        self,
        target: Target,
        profile: Optional[BuildProfile] = None,
        jobs: Optional[int] = None,
        verbose: bool = False,
    ) -> BuildReport:
        """Build ``target``, recompiling only what changed.

        Args:
            target: Target to build
            profile: Profile to build (defaults to the target's profile)
            jobs: Maximum concurrent compiles (default: CFORGE_JOBS or CPU count)
            verbose: Log every phase and compiled file instead of a progress bar

        Returns:
            BuildReport; compile and link failures are reported, not raised

        Raises:
            ConfigurationError: If the target cannot be built (bad layout, no compiler)
            BuildCancelledError: If SIGTERM arrived while building
            KeyboardInterrupt: If interrupted by the user
        """
        if profile is not None:
            target = target.with_profile(profile)
        target = _absolute_target(target)
        if jobs is None:
            jobs = default_jobs()

        self.phase = BuildPhase.IDLE
        self.phase_history = [BuildPhase.IDLE]
        start_time = time.time()

        toolchain = self.toolchain
        driver = CompilerDriver(toolchain, target.profile, target.kind)
        print_profile_banner(target.profile, compiler=toolchain.display_name)

        with self._termination_handler():
            try:
                return self._run(target, toolchain, driver, jobs, verbose, start_time)
            except (KeyboardInterrupt, BuildCancelledError):
                logger.warning(f"Build of {target.name} interrupted, fingerprint store left unchanged")
                if self._executor is not None:
                    self._executor.cancel()
                if BuildPhase.FAILED in _TRANSITIONS[self.phase]:
                    self._transition(BuildPhase.FAILED)
                raise
            finally:
                self._executor = None

    def clean(self, target: Target) -> None:
        """Remove every build output of ``target`` (all profiles)."""
        clean(target)

    def _transition(self, phase: BuildPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise BuildPhaseError(f"Illegal build phase transition: {self.phase.value} -> {phase.value}")
        logger.debug(f"Build phase: {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.phase_history.append(phase)

    def _run(
        self,
        target: Target,
        toolchain: Toolchain,
        driver: CompilerDriver,
        jobs: Optional[int],
        verbose: bool,
        start_time: float,
    ) -> BuildReport:
        collector = self.errors = ErrorCollector()

        # Phase 1: discovery
        self._transition(BuildPhase.DISCOVERING)
        if verbose:
            log_phase(1, TOTAL_PHASES, "Scanning sources...")
        collection = SourceScanner(target).scan()
        if not collection.sources:
            raise ConfigurationError(f"No source files found in {target.source_root}")
        if verbose:
            log_detail(f"Found {len(collection.sources)} sources, {len(collection.headers)} headers")

        # Phase 2: include graph
        self._transition(BuildPhase.GRAPH_BUILDING)
        if verbose:
            log_phase(2, TOTAL_PHASES, "Resolving includes...")
        graph = DependencyGraphBuilder(IncludeResolver(target.include_roots)).build(collection.sources)
        for diagnostic in graph.unresolved:
            # Unfound <...> includes are taken to be system headers
            if not diagnostic.system:
                collector.add_warning("resolve", diagnostic.format(), str(diagnostic.including))
                logger.warning(diagnostic.format())

        # Phase 3: diff against the previous build
        self._transition(BuildPhase.DIFF_COMPUTING)
        if verbose:
            log_phase(3, TOTAL_PHASES, "Checking fingerprints...")
        store = FingerprintStore.for_directory(target.output_dir)
        tracker = BuildStateTracker(target.output_dir)
        config_changed, reasons, build_state = tracker.check_invalidation(target, toolchain, driver)
        if config_changed and len(store):
            logger.info(f"Discarding {len(store)} fingerprints: {'; '.join(reasons)}")
            store.clear()

        probe = FileProbe(store)
        detector = StalenessDetector(store, probe)
        object_paths = {normalize_path(s.path): driver.object_path(target, normalize_path(s.path)) for s in collection.sources}
        staleness = detector.detect(collection.sources, graph, object_paths)
        plan = self._plan(target, driver, detector, collection, staleness, object_paths)

        if plan.is_noop:
            self._refresh_touched(store, probe)
            self._transition(BuildPhase.DONE)
            return BuildReport(
                success=True,
                up_to_date=True,
                phase=self.phase,
                target=target,
                artifact=plan.artifact,
                diagnostics=list(graph.unresolved),
                errors=collector,
                build_time=time.time() - start_time,
                message=f"Finished {target.profile} target `{target.name}` (up to date)",
            )

        # Phase 4: compile and link
        self._transition(BuildPhase.COMPILING)
        if verbose:
            log_phase(4, TOTAL_PHASES, f"Compiling {len(plan.compile_steps)} of {len(collection.sources)} sources...")
        executor = CompilationExecutor(num_workers=jobs)
        self._executor = executor
        results = self._compile(executor, plan, verbose)

        compiled = [job.source_path for job in results if job.state == JobState.COMPLETED]
        failures = [CompileFailure(job.source_path, job.result_code, job.output) for job in results if job.state != JobState.COMPLETED]
        for failure in failures:
            message = f"failed to compile {failure.source.name}"
            if failure.returncode is not None:
                message += f" (exit code {failure.returncode})"
            collector.add_error(BuildError(ErrorSeverity.ERROR, "compile", str(failure.source), message, failure.output))

        if collector.has_errors():
            self._transition(BuildPhase.FAILED)
            logger.info(collector.format_summary())
            return BuildReport(
                success=False,
                up_to_date=False,
                phase=self.phase,
                target=target,
                artifact=plan.artifact,
                compiled=compiled,
                failures=failures,
                diagnostics=list(graph.unresolved),
                errors=collector,
                build_time=time.time() - start_time,
                message=f"Build failed: {len(failures)} of {len(plan.compile_steps)} sources failed to compile",
            )

        self._transition(BuildPhase.LINKING)
        if plan.link_command is None:
            raise BuildPhaseError(f"No link command planned for {plan.artifact.name} after compiling")
        if verbose:
            log_detail(f"Linking {plan.artifact.name} ({plan.link_reason})")
        plan.artifact.parent.mkdir(parents=True, exist_ok=True)
        returncode, link_output = executor.run_command(plan.link_command)
        if returncode != 0:
            link_output = link_output or f"linker exited with code {returncode}"
            collector.add_error(BuildError(ErrorSeverity.FATAL, "link", str(plan.artifact), f"linking {plan.artifact.name} failed", link_output))
            self._transition(BuildPhase.FAILED)
            return BuildReport(
                success=False,
                up_to_date=False,
                phase=self.phase,
                target=target,
                artifact=plan.artifact,
                compiled=compiled,
                linked=True,
                link_output=link_output,
                diagnostics=list(graph.unresolved),
                errors=collector,
                build_time=time.time() - start_time,
                message=f"Build failed: linking {plan.artifact.name} failed",
            )

        self._update_store(store, probe, graph, collection, compiled, plan.object_paths)
        store.save()
        tracker.save_state(build_state)

        self._transition(BuildPhase.DONE)
        build_time = time.time() - start_time
        return BuildReport(
            success=True,
            up_to_date=False,
            phase=self.phase,
            target=target,
            artifact=plan.artifact,
            compiled=compiled,
            linked=True,
            diagnostics=list(graph.unresolved),
            errors=collector,
            build_time=build_time,
            message=f"Finished {target.profile} target `{target.name}` in {build_time:.2f}s",
        )

    def _plan(
        self,
        target: Target,
        driver: CompilerDriver,
        detector: StalenessDetector,
        collection: SourceCollection,
        staleness: StalenessResult,
        object_paths: dict[Path, Path],
    ) -> BuildPlan:
        include_dirs = [root for root in target.include_roots if root.is_dir()]
        steps: list[CompileStep] = []
        for source in collection.sources:
            path = normalize_path(source.path)
            if path in staleness.stale:
                obj = object_paths[path]
                steps.append(CompileStep(source=source, object_path=obj, command=driver.compile_command(source, obj, include_dirs)))

        ordered_objects = [object_paths[normalize_path(s.path)] for s in collection.sources]
        artifact = driver.artifact_path(target)
        link_reason = detector.link_reason(artifact, ordered_objects, bool(steps))
        link_command = None
        if link_reason is not None:
            cxx = any(source.is_cxx for source in collection.sources)
            link_command = driver.link_command(ordered_objects, artifact, cxx=cxx)
            logger.debug(f"Relinking {artifact.name}: {link_reason}")

        return BuildPlan(
            compile_steps=steps,
            link_command=link_command,
            artifact=artifact,
            object_paths=ordered_objects,
            reasons=dict(staleness.stale),
            link_reason=link_reason or "",
        )

    def _compile(self, executor: CompilationExecutor, plan: BuildPlan, verbose: bool) -> list[CompilationJob]:
        jobs = [
            CompilationJob(job_id=str(index), source_path=normalize_path(step.source.path), output_path=step.object_path, command=step.command)
            for index, step in enumerate(plan.compile_steps)
        ]
        if not jobs:
            return jobs

        if verbose:
            executor.progress_callback = lambda job: log_compile(job.source_path.name, plan.reasons.get(job.source_path, ""), verbose_only=False)
            return executor.run_jobs(jobs)

        # Use tqdm progress bar for non-verbose mode
        from tqdm import tqdm

        with tqdm(total=len(jobs), desc="Compiling", unit="file", ncols=80, leave=False) as pbar:
            executor.progress_callback = lambda job: pbar.update(1)
            return executor.run_jobs(jobs)

    @staticmethod
    def _update_store(
        store: FingerprintStore,
        probe: FileProbe,
        graph: DependencyGraph,
        collection: SourceCollection,
        compiled: list[Path],
        object_paths: list[Path],
    ) -> None:
        for source in compiled:
            closure = graph.closure(source)
            for path in (source, *closure):
                fingerprint = probe.current(path)
                if fingerprint is not None:
                    store.update(fingerprint)
            store.record_includes(source, closure)

        BuildOrchestrator._refresh_touched(store, probe, save=False)
        store.link_inputs = [normalize_path(p) for p in object_paths]

        keep = {normalize_path(s.path) for s in collection.sources} | set(graph.headers)
        dropped = store.prune(keep)
        if dropped:
            logger.debug(f"Dropped {dropped} fingerprints of files no longer in the build")

    @staticmethod
    def _refresh_touched(store: FingerprintStore, probe: FileProbe, save: bool = True) -> None:
        """Record new stat data for files that were hashed but had not changed.

        Without this a touched file would be hashed again on every run.
        """
        refreshed = 0
        for path in probe.hashed:
            prior = store.get(path)
            current = probe.current(path)
            if prior is not None and current is not None and prior.signature == current.signature and prior != current:
                store.update(current)
                refreshed += 1
        if refreshed and save:
            store.save()

    @contextmanager
    def _termination_handler(self) -> Iterator[None]:
        """Turn SIGTERM into BuildCancelledError for the duration of a build."""
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def handle(signum: int, frame: object) -> None:
            raise BuildCancelledError(signum)

        previous = signal.signal(signal.SIGTERM, handle)
        try:
            yield
        finally:
            signal.signal(signal.SIGTERM, previous)


def _absolute_target(target: Target) -> Target:
    """Target with every path absolute and normalized."""
    return dataclasses.replace(
        target,
        source_root=normalize_path(target.source_root),
        include_roots=tuple(normalize_path(root) for root in target.include_roots),
        target_dir=normalize_path(target.target_dir),
    )


def clean(target: Target) -> None:
    """Remove the target root directory. A missing directory is not an error."""
    if target.target_dir.exists():
        logger.info(f"Removing {target.target_dir}")
        shutil.rmtree(target.target_dir)
