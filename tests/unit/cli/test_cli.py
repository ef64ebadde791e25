"""Tests for the cforge command-line interface."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from cforge.build import BuildProfile
from cforge.cli import EXIT_BUILD_FAILED, EXIT_CONFIG_ERROR, EXIT_INTERRUPTED, _split_profile_and_dir, main


@pytest.fixture
def cli_env(monkeypatch, fake_compiler):
    """Point the CLI at the fake compiler with no other overrides."""
    monkeypatch.setenv("CFORGE_CC", str(fake_compiler.path))
    monkeypatch.delenv("CFORGE_TARGET_DIR", raising=False)
    monkeypatch.delenv("CFORGE_JOBS", raising=False)
    return fake_compiler


def _exit_code(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestBuildCommand:
    """Tests for the 'cforge build' command."""

    def test_build_success(self, cli_env, make_project, capsys):
        """A clean project builds and exits 0."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        assert _exit_code(["build", str(root)]) == 0

        assert (root / "target" / "debug" / "hello").exists()
        assert "Finished debug target `hello`" in capsys.readouterr().out

    def test_second_build_is_up_to_date(self, cli_env, make_project, capsys):
        """Nothing is compiled when nothing changed."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})
        assert _exit_code(["build", str(root)]) == 0
        cli_env.reset()
        capsys.readouterr()

        assert _exit_code(["build", str(root)]) == 0

        assert cli_env.invocations() == []
        assert "(up to date)" in capsys.readouterr().out

    def test_release_profile(self, cli_env, make_project, capsys):
        """The profile positional selects the output subtree and banner."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        assert _exit_code(["build", "release", str(root)]) == 0

        assert (root / "target" / "release" / "hello").exists()
        assert "PROFILE=release" in capsys.readouterr().out

    def test_dynamic_kind(self, cli_env, make_project):
        """--kind dynamic links a shared library."""
        root = make_project({"src/lib.c": "int answer(void) { return 42; }\n"})

        assert _exit_code(["build", str(root), "--kind", "dynamic"]) == 0

        assert (root / "target" / "debug" / "libhello.so").exists()

    def test_compile_failure_exits_1(self, cli_env, make_project, capsys):
        """A source that fails to compile is reported with its diagnostics."""
        root = make_project(
            {
                "src/main.c": "int main(void) { return 0; }\n",
                "src/broken.c": '#error "broken"\n',
            }
        )

        assert _exit_code(["build", str(root)]) == EXIT_BUILD_FAILED

        out = capsys.readouterr().out
        assert "broken.c" in out
        assert "#error directive" in out
        assert "ERROR: Build failed: 1 of 2 sources failed to compile" in out

    def test_unresolved_include_is_a_warning(self, cli_env, make_project, capsys):
        """Missing quoted headers are reported as warnings; the build still succeeds."""
        root = make_project({"src/main.c": '#include "gone.h"\n#include <stdio.h>\nint main;\n'})

        assert _exit_code(["build", str(root)]) == 0

        out = capsys.readouterr().out
        assert 'WARNING: ' in out
        assert 'unresolved include "gone.h"' in out
        assert "stdio.h" not in out

    def test_link_failure_exits_1(self, cli_env, make_project, capsys):
        root = make_project({"src/main.c": "int main(void) { return LINK_ERROR; }\n"})

        assert _exit_code(["build", str(root)]) == EXIT_BUILD_FAILED

        out = capsys.readouterr().out
        assert "[FATAL] link: linking hello failed" in out
        assert "undefined reference" in out
        assert "ERROR: Build failed: linking hello failed" in out

    def test_missing_project_exits_2(self, cli_env, tmp_path, capsys):
        """A directory without src/ is a configuration error."""
        assert _exit_code(["build", str(tmp_path)]) == EXIT_CONFIG_ERROR
        assert "Not a cforge project" in capsys.readouterr().out

    def test_static_kind_exits_2(self, cli_env, make_project, capsys):
        """Static libraries are rejected before anything is compiled."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        assert _exit_code(["build", str(root), "--kind", "static"]) == EXIT_CONFIG_ERROR
        assert cli_env.invocations() == []
        assert "not supported" in capsys.readouterr().out

    def test_missing_compiler_exits_2(self, monkeypatch, make_project, tmp_path):
        """A configured compiler that does not exist is a configuration error."""
        monkeypatch.setenv("CFORGE_CC", str(tmp_path / "no-such-cc"))
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        assert _exit_code(["build", str(root)]) == EXIT_CONFIG_ERROR

    def test_keyboard_interrupt_exits_130(self, cli_env, make_project, capsys):
        """Ctrl-C during a build exits with the conventional code."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        with patch("cforge.cli.BuildOrchestrator") as mock_orchestrator:
            mock_orchestrator.return_value.build.side_effect = KeyboardInterrupt()
            assert _exit_code(["build", str(root)]) == EXIT_INTERRUPTED

        assert "Build interrupted" in capsys.readouterr().out

    def test_jobs_must_be_positive(self, cli_env, make_project, capsys):
        """--jobs 0 is rejected by the argument parser."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        assert _exit_code(["build", str(root), "--jobs", "0"]) == 2
        assert "positive integer" in capsys.readouterr().err


class TestRunCommand:
    """Tests for the 'cforge run' command."""

    def test_run_passes_arguments(self, cli_env, make_project, capfd):
        """Arguments after -- reach the built binary."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        assert _exit_code(["run", str(root), "--", "one", "two"]) == 0

        assert "ran one two" in capfd.readouterr().out

    def test_run_dynamic_library_exits_2(self, cli_env, make_project, capsys):
        """Only binaries can be run."""
        root = make_project({"src/lib.c": "int answer(void) { return 42; }\n"})

        assert _exit_code(["run", str(root), "--kind", "dynamic"]) == EXIT_CONFIG_ERROR
        assert "only binaries can be run" in capsys.readouterr().out

    def test_run_does_not_start_failed_build(self, cli_env, make_project, capfd):
        """A failed build never runs a stale binary."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})
        assert _exit_code(["build", str(root)]) == 0
        (root / "src" / "main.c").write_text('#error "broken"\n', encoding="utf-8")
        capfd.readouterr()

        assert _exit_code(["run", str(root)]) == EXIT_BUILD_FAILED
        assert "ran" not in capfd.readouterr().out.split()


class TestCleanCommand:
    """Tests for the 'cforge clean' command."""

    def test_clean_removes_target(self, cli_env, make_project, capsys):
        """clean deletes the whole target directory."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})
        assert _exit_code(["build", str(root)]) == 0

        assert _exit_code(["clean", str(root)]) == 0

        assert not (root / "target").exists()
        assert "Removed" in capsys.readouterr().out

    def test_clean_without_target(self, make_project):
        """Cleaning a project that was never built succeeds."""
        root = make_project({"src/main.c": "int main(void) { return 0; }\n"})

        assert _exit_code(["clean", str(root)]) == 0


class TestArguments:
    """Tests for argument parsing helpers."""

    def test_split_profile_only(self):
        """A single profile name selects that profile in the current directory."""
        assert _split_profile_and_dir("release", None) == (BuildProfile.RELEASE, Path.cwd())

    def test_split_directory_only(self):
        """A single non-profile positional is the project directory."""
        assert _split_profile_and_dir("myproject", None) == (BuildProfile.DEBUG, Path("myproject"))

    def test_split_both(self):
        assert _split_profile_and_dir("Release", "proj") == (BuildProfile.RELEASE, Path("proj"))

    def test_split_defaults(self):
        assert _split_profile_and_dir(None, None) == (BuildProfile.DEBUG, Path.cwd())

    def test_split_unknown_profile_with_directory(self):
        """An unknown profile is an error when a directory is also given."""
        with pytest.raises(ValueError, match="Unknown build profile"):
            _split_profile_and_dir("fast", "proj")

    def test_unknown_profile_exits_2(self, tmp_path, capsys):
        assert _exit_code(["build", "fast", str(tmp_path)]) == EXIT_CONFIG_ERROR
        assert "Unknown build profile" in capsys.readouterr().out

    def test_main_help(self, capsys):
        """Running without a command prints help and exits 0."""
        assert _exit_code([]) == 0
        out = capsys.readouterr().out
        assert "cforge" in out
        assert "build" in out

    def test_build_help(self, capsys):
        assert _exit_code(["build", "--help"]) == 0
        out = capsys.readouterr().out
        assert "--jobs" in out
        assert "--kind" in out
        assert "--verbose" in out

    def test_main_version(self, capsys):
        """--version prints the package version."""
        from cforge import __version__

        assert _exit_code(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_main_uses_sys_argv(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["cforge", "--version"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0
