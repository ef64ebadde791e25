"""Pytest configuration and fixtures for cforge tests.

This conftest addresses Python 3.13 compatibility issues with pytest's capture fixtures.
Python 3.13 changed how stdout/stderr are handled, causing "I/O operation on closed file"
errors during test teardown. This is a known issue: https://github.com/pytest-dev/pytest/issues/11439

It also provides a fake compiler: a small script that understands the GNU
command spelling (``-c``, ``-o``), so orchestrator tests run real processes
without needing gcc or clang on the machine.
"""

import os
import stat
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import pytest

from cforge import output
from cforge.build.models import ArtifactKind, Target
from cforge.build.toolchain import CompilerFamily, HostPlatform, Toolchain

# Suppress ResourceWarnings from file cleanup in Python 3.13
if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)


@pytest.fixture(autouse=True)
def _restore_stdio():  # noqa: PT004
    """Ensure stdout/stderr are always restored after each test.

    This prevents "I/O operation on closed file" errors in Python 3.13
    when tests raise exceptions that close stdout/stderr.
    """
    yield

    # Restore if they were closed during the test
    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.fixture(autouse=True)
def _reset_output():  # noqa: PT004
    """Restore the console printer to stdout and verbose mode after each test."""
    yield
    output.init_timer()
    output.set_verbose(True)


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_call(item):  # noqa: ARG001
    """Wrap test execution to handle stdout/stderr closure gracefully."""
    yield

    if hasattr(sys.stdout, "closed") and sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if hasattr(sys.stderr, "closed") and sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.hookimpl(hookwrapper=True, trylast=True)
def pytest_runtest_teardown(item):  # noqa: ARG001
    """Ensure streams are restored during teardown phase."""
    yield

    if hasattr(sys.stdout, "closed") and sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if hasattr(sys.stderr, "closed") and sys.stderr.closed:
        sys.stderr = sys.__stderr__


# Compiles copy the source text into the object; a source containing
# "#error" fails. Links concatenate the objects into a runnable shell script;
# an object containing "LINK_ERROR" fails the link.
_FAKE_COMPILER_SOURCE = '''
import os
import sys
from pathlib import Path

LOG_FILE = __LOG_FILE__


def main(argv):
    output = None
    compile_only = False
    inputs = []
    args = iter(argv)
    for arg in args:
        if arg == "-o":
            output = next(args)
        elif arg == "-c":
            compile_only = True
        elif not arg.startswith("-"):
            inputs.append(arg)

    with open(LOG_FILE, "a", encoding="utf-8") as log:
        log.write(("compile " if compile_only else "link ") + " ".join(inputs) + "\\n")

    if compile_only:
        source = Path(inputs[0])
        text = source.read_text(encoding="utf-8")
        if "#error" in text:
            sys.stderr.write(f"{source}:1:2: error: #error directive\\n")
            return 1
        Path(output).write_text(f"OBJ {source.name}\\n{text}", encoding="utf-8")
        return 0

    lines = []
    for obj in inputs:
        text = Path(obj).read_text(encoding="utf-8")
        if "LINK_ERROR" in text:
            sys.stderr.write(f"{obj}: undefined reference to `missing_symbol'\\n")
            return 1
        lines.extend("# " + line for line in text.splitlines())
    Path(output).write_text("#!/bin/sh\\n" + "\\n".join(lines) + '\\necho "ran $@"\\n', encoding="utf-8")
    os.chmod(output, 0o755)
    return 0


sys.exit(main(sys.argv[1:]))
'''


@dataclass
class FakeCompiler:
    """Handle on the fake compiler and its invocation log."""

    path: Path
    log_file: Path

    def invocations(self) -> list[str]:
        if not self.log_file.exists():
            return []
        return self.log_file.read_text(encoding="utf-8").splitlines()

    def compiles(self) -> list[str]:
        return [line for line in self.invocations() if line.startswith("compile ")]

    def links(self) -> list[str]:
        return [line for line in self.invocations() if line.startswith("link ")]

    def reset(self) -> None:
        if self.log_file.exists():
            self.log_file.unlink()


@pytest.fixture
def fake_compiler(tmp_path_factory) -> FakeCompiler:
    """Executable fake compiler (POSIX shell wrapper around a Python script)."""
    if sys.platform == "win32":
        pytest.skip("fake compiler is a POSIX shell script")

    directory = tmp_path_factory.mktemp("fakecc")
    log_file = directory / "invocations.log"
    script = directory / "fakecc.py"
    script.write_text(_FAKE_COMPILER_SOURCE.replace("__LOG_FILE__", repr(str(log_file))), encoding="utf-8")

    wrapper = directory / "gcc"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n', encoding="utf-8")
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return FakeCompiler(path=wrapper, log_file=log_file)


@pytest.fixture
def fake_toolchain(fake_compiler) -> Toolchain:
    return Toolchain(
        family=CompilerFamily.GCC,
        c_compiler=fake_compiler.path,
        cxx_compiler=fake_compiler.path,
        host=HostPlatform.LINUX,
    )


@pytest.fixture
def make_project(tmp_path) -> Callable[..., Path]:
    """Factory creating a project tree from a {relative path: content} mapping."""

    def _make(files: dict[str, str], name: str = "hello") -> Path:
        root = tmp_path / name
        (root / "src").mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def project_target() -> Callable[..., Target]:
    """Factory building a Target for a project created by make_project."""

    def _target(root: Path, kind: ArtifactKind = ArtifactKind.BINARY, name: str = "hello") -> Target:
        include = root / "include"
        return Target(
            name=name,
            kind=kind,
            source_root=root / "src",
            include_roots=(include,) if include.is_dir() else (),
            target_dir=root / "target",
        )

    return _target


@pytest.fixture
def edit_file() -> Callable[[Path, str], None]:
    """Rewrite a file and move its mtime forward so the change is always visible."""

    def _edit(path: Path, content: str) -> None:
        before = path.stat().st_mtime_ns if path.exists() else 0
        path.write_text(content, encoding="utf-8")
        after = path.stat()
        bumped = max(after.st_mtime_ns, before + 2_000_000_000)
        os.utime(path, ns=(after.st_atime_ns, bumped))

    return _edit
