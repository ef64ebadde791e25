"""Tests for build state tracking and cache invalidation."""

from pathlib import Path

import pytest

from cforge.build.build_profiles import BuildProfile
from cforge.build.build_state import STATE_FILENAME, BuildState, BuildStateTracker
from cforge.build.compiler_driver import CompilerDriver
from cforge.build.models import ArtifactKind, Target
from cforge.build.toolchain import CompilerFamily, HostPlatform, Toolchain


def _state(**overrides):
    values = dict(
        compiler="/usr/bin/gcc",
        family="gcc",
        kind="binary",
        name="hello",
        include_roots=["/project/include"],
        compile_flags=["-Wall", "-g", "-O0"],
    )
    values.update(overrides)
    return BuildState(**values)


class TestBuildState:
    """Test BuildState class."""

    def test_to_dict_and_from_dict(self):
        state = _state()
        restored = BuildState.from_dict(state.to_dict())
        assert restored == state

    def test_save_and_load(self, tmp_path):
        state_file = tmp_path / "build_state.json"
        _state().save(state_file)

        loaded = BuildState.load(state_file)

        assert loaded is not None
        assert loaded.compiler == "/usr/bin/gcc"
        assert not state_file.with_suffix(".tmp").exists()

    def test_load_nonexistent_file(self, tmp_path):
        assert BuildState.load(tmp_path / "nonexistent.json") is None

    def test_load_corrupted_file(self, tmp_path):
        state_file = tmp_path / "corrupted.json"
        state_file.write_text("not valid json {{{")
        assert BuildState.load(state_file) is None

    def test_load_missing_fields(self, tmp_path):
        state_file = tmp_path / "partial.json"
        state_file.write_text('{"compiler": "gcc"}')
        assert BuildState.load(state_file) is None

    def test_compare_no_previous_state(self):
        needs_rebuild, reasons = _state().compare(None)
        assert needs_rebuild is True
        assert "No previous build state found" in reasons

    def test_compare_unchanged(self):
        needs_rebuild, reasons = _state().compare(_state())
        assert needs_rebuild is False
        assert reasons == []

    def test_compare_compiler_changed(self):
        needs_rebuild, reasons = _state(compiler="/usr/bin/clang", family="clang").compare(_state())
        assert needs_rebuild is True
        assert any("Compiler changed" in r for r in reasons)
        assert any("Compiler family changed" in r for r in reasons)

    def test_compare_kind_changed(self):
        needs_rebuild, reasons = _state(kind="dynamic_library").compare(_state())
        assert needs_rebuild is True
        assert reasons == ["Target kind changed: binary -> dynamic_library"]

    def test_compare_include_roots_changed(self):
        _, reasons = _state(include_roots=[]).compare(_state())
        assert reasons == ["Include roots have changed"]

    def test_compare_flags_changed(self):
        _, reasons = _state(compile_flags=["-Wall", "-g", "-O0", "-fPIC"]).compare(_state())
        assert reasons == ["Compile flags have changed"]


class TestBuildStateTracker:
    """Test BuildStateTracker class."""

    @pytest.fixture
    def setup(self, tmp_path):
        target = Target(
            name="hello",
            kind=ArtifactKind.BINARY,
            source_root=tmp_path / "src",
            include_roots=(tmp_path / "include",),
            target_dir=tmp_path / "target",
        )
        toolchain = Toolchain(CompilerFamily.GCC, Path("/usr/bin/gcc"), Path("/usr/bin/g++"), HostPlatform.LINUX)
        driver = CompilerDriver(toolchain, BuildProfile.DEBUG, ArtifactKind.BINARY)
        return target, toolchain, driver

    def test_create_state(self, setup):
        target, toolchain, driver = setup
        state = BuildStateTracker.create_state(target, toolchain, driver)

        assert state.compiler == str(Path("/usr/bin/gcc"))
        assert state.family == "gcc"
        assert state.kind == "binary"
        assert state.compile_flags == ["-Wall", "-Wextra", "-g", "-O0"]

    def test_check_invalidation_first_build(self, setup):
        target, toolchain, driver = setup
        tracker = BuildStateTracker(target.output_dir)

        needs_rebuild, reasons, current = tracker.check_invalidation(target, toolchain, driver)

        assert needs_rebuild is True
        assert "No previous build state found" in reasons
        assert current.name == "hello"

    def test_check_invalidation_unchanged(self, setup):
        target, toolchain, driver = setup
        tracker = BuildStateTracker(target.output_dir)
        _, _, state = tracker.check_invalidation(target, toolchain, driver)
        tracker.save_state(state)

        needs_rebuild, reasons, _ = tracker.check_invalidation(target, toolchain, driver)

        assert (target.output_dir / STATE_FILENAME).exists()
        assert needs_rebuild is False
        assert reasons == []

    def test_check_invalidation_compiler_changed(self, setup):
        target, toolchain, driver = setup
        tracker = BuildStateTracker(target.output_dir)
        tracker.save_state(tracker.create_state(target, toolchain, driver))

        clang = Toolchain(CompilerFamily.CLANG, Path("/usr/bin/clang"), Path("/usr/bin/clang++"), HostPlatform.LINUX)
        needs_rebuild, reasons, _ = tracker.check_invalidation(
            target, clang, CompilerDriver(clang, BuildProfile.DEBUG, ArtifactKind.BINARY)
        )

        assert needs_rebuild is True
        assert any("Compiler changed" in r for r in reasons)
