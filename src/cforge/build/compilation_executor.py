"""
Compilation Executor - Parallel compilation with a bounded worker pool.

Each stale source becomes one CompilationJob. Jobs are independent: every job
writes its own object file and no job reads another job's output, so they run
concurrently on a ThreadPoolExecutor where each worker blocks on one compiler
child process.

The executor tracks every live child process so that cancel() can terminate
the whole set (including the compilers' own children) when the build is
interrupted. It never touches build state; the orchestrator reads the job
results after the pool has drained.
"""

import logging
import multiprocessing
import subprocess
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..subprocess_utils import safe_popen, terminate_process_tree

logger = logging.getLogger(__name__)


class JobState(Enum):
    """State of a compilation job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class CompilationJob:
    """Single compilation job."""

    job_id: str
    source_path: Path
    output_path: Path
    command: list[str]
    state: JobState = JobState.PENDING
    result_code: Optional[int] = None
    output: str = ""
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def duration(self) -> Optional[float]:
        """Get job duration in seconds."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None


ProgressCallback = Callable[[CompilationJob], None]


class CompilationExecutor:
    """Runs compiler and linker processes for one build."""

    def __init__(self, num_workers: Optional[int] = None, progress_callback: Optional[ProgressCallback] = None):
        """
        Args:
            num_workers: Maximum concurrent compiles (default: CPU count)
            progress_callback: Called in the calling thread as each job finishes
        """
        self.num_workers = max(1, num_workers or multiprocessing.cpu_count())
        self.progress_callback = progress_callback
        self._active: dict[int, subprocess.Popen] = {}
        self._lock = threading.Lock()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def run_jobs(self, jobs: list[CompilationJob]) -> list[CompilationJob]:
        """Run every job and wait until all have finished.

        A failing job never stops the others. If the wait is interrupted
        (KeyboardInterrupt, cancellation signal), running compilers are
        terminated, pending jobs are dropped and the exception propagates.

        Returns:
            The same jobs, with state, result code and output filled in
        """
        if not jobs:
            return jobs

        workers = min(self.num_workers, len(jobs))
        logger.debug(f"Running {len(jobs)} compilation jobs on {workers} workers")
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="compile")
        try:
            futures: dict[Future[None], CompilationJob] = {pool.submit(self._execute_job, job): job for job in jobs}
            for future in as_completed(futures):
                future.result()
                if self.progress_callback:
                    self.progress_callback(futures[future])
        except BaseException:
            self.cancel()
            pool.shutdown(wait=True, cancel_futures=True)
            for job in jobs:
                if job.state == JobState.PENDING:
                    job.state = JobState.CANCELLED
            raise
        pool.shutdown(wait=True)

        failed = sum(1 for job in jobs if job.state != JobState.COMPLETED)
        logger.info(f"All jobs completed: {len(jobs) - failed} succeeded, {failed} failed")
        return jobs

    def run_command(self, command: list[str]) -> tuple[Optional[int], str]:
        """Run one command synchronously (used for linking).

        Returns:
            (exit code, combined stdout/stderr); exit code is None if the
            process could not be started
        """
        return self._run_process(command)

    def cancel(self) -> None:
        """Terminate every running child process and refuse new ones."""
        with self._lock:
            self._cancelled = True
            active = list(self._active.values())
        if active:
            logger.warning(f"Terminating {len(active)} running compiler processes")
        for proc in active:
            terminate_process_tree(proc.pid)

    def _execute_job(self, job: CompilationJob) -> None:
        if self._cancelled:
            job.state = JobState.CANCELLED
            return

        job.state = JobState.RUNNING
        job.start_time = time.time()
        logger.debug(f"Compiling {job.source_path.name}: {' '.join(job.command)}")

        try:
            job.output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            job.output = f"Cannot create object directory {job.output_path.parent}: {e}"
            job.state = JobState.FAILED
            job.end_time = time.time()
            return

        job.result_code, job.output = self._run_process(job.command)
        job.end_time = time.time()

        if self._cancelled:
            job.state = JobState.CANCELLED
        elif job.result_code == 0:
            job.state = JobState.COMPLETED
            logger.debug(f"Job {job.job_id} completed in {job.duration():.2f}s")
        else:
            job.state = JobState.FAILED
            logger.debug(f"Job {job.job_id} failed with exit code {job.result_code}: {job.source_path.name}")

    def _run_process(self, command: list[str]) -> tuple[Optional[int], str]:
        with self._lock:
            if self._cancelled:
                return None, "cancelled"
            try:
                proc = safe_popen(
                    command,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    encoding="utf-8",
                    errors="replace",
                )
            except OSError as e:
                return None, f"Failed to start {command[0]}: {e}"
            self._active[proc.pid] = proc

        try:
            output, _ = proc.communicate()
        finally:
            with self._lock:
                self._active.pop(proc.pid, None)
        return proc.returncode, output or ""
