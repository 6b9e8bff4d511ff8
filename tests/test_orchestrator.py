# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

# =============================================================================
# ORCHESTRATOR TESTS
# =============================================================================

import tomllib
from unittest.mock import patch

import pytest

from patinaqemu.errors import (BootstrapNotSetError, ConflictingOverrideError,
                               InvalidOverridePathError, ManifestParseError,
                               ToolchainInvocationError)
from patinaqemu.orchestrator import BuildOrchestrator, run_build

from .conftest import LOCK_TEXT, MANIFEST_TEXT, FakeCargo, make_crate


class TestRun:
    """Test a whole build."""

    def test_build_without_overrides(self, workspace, environ, fake_cargo):
        orchestrator = BuildOrchestrator("q35", "debug", workspace, environ)
        result = orchestrator.Run()

        assert result.success is True
        assert result.artifact_path.is_file()
        assert orchestrator.state == "Done"
        assert fake_cargo.manifests_seen == [MANIFEST_TEXT]

    def test_build_with_overrides(self, workspace, environ, fake_cargo,
                                  tmp_path):
        core = make_crate(tmp_path, "patina_dxe_core", "dxe_core")

        result = run_build("sbsa", "release", workspace, [str(core)], environ)

        assert result.success is True
        data = tomllib.loads(fake_cargo.manifests_seen[0])
        assert data["patch"]["crates-io"]["patina_dxe_core"] == {
            "path": core.resolve().as_posix()}
        assert (workspace / "Cargo.toml").read_text() == MANIFEST_TEXT
        assert (workspace / "Cargo.lock").read_text() == LOCK_TEXT

    def test_twice_in_a_row(self, workspace, environ, fake_cargo):
        """Two Q35 debug builds leave the manifest as it was."""
        before = (workspace / "Cargo.toml").read_bytes()

        first = run_build("q35", "debug", workspace, environ=environ)
        second = run_build("q35", "debug", workspace, environ=environ)

        assert (workspace / "Cargo.toml").read_bytes() == before
        assert first.artifact_path == second.artifact_path
        assert second.artifact_path.is_file()

    def test_cannot_run_twice(self, workspace, environ, fake_cargo):
        orchestrator = BuildOrchestrator("q35", "debug", workspace, environ)
        orchestrator.Run()
        with pytest.raises(RuntimeError):
            orchestrator.Run()

    def test_build_options_reach_cargo(self, workspace, environ, fake_cargo):
        run_build("q35", "debug", workspace, environ=environ,
                  features=["enable_debugger"], jobs=2)

        args = fake_cargo.calls[0]["args"]
        assert args[args.index("--features") + 1] == "x64,enable_debugger"
        assert args[args.index("--jobs") + 1] == "2"


class TestRunFailures:
    """Test that failures leave the workspace clean."""

    def test_toolchain_failure_restores_manifest(self, workspace, environ,
                                                 tmp_path):
        core = make_crate(tmp_path, "patina_dxe_core")
        cargo = FakeCargo(returncode=101)
        orchestrator = BuildOrchestrator("q35", "debug", workspace, environ)

        with patch("patinaqemu.builder.RunCmd", cargo):
            with pytest.raises(ToolchainInvocationError) as exc_info:
                orchestrator.Run([core])

        assert exc_info.value.result.artifact_path is None
        assert orchestrator.state == "Failed"
        assert "[patch.crates-io]" in cargo.manifests_seen[0]
        assert (workspace / "Cargo.toml").read_text() == MANIFEST_TEXT

    def test_conflict_never_writes(self, workspace, environ, fake_cargo,
                                   tmp_path):
        first = make_crate(tmp_path, "patina", "a")
        second = make_crate(tmp_path, "patina", "b")
        before = (workspace / "Cargo.toml").stat().st_mtime_ns

        orchestrator = BuildOrchestrator("q35", "debug", workspace, environ)
        with pytest.raises(ConflictingOverrideError):
            orchestrator.Run([first, second])

        assert orchestrator.state == "Failed"
        assert fake_cargo.calls == []
        assert (workspace / "Cargo.toml").stat().st_mtime_ns == before

    def test_invalid_path(self, workspace, environ, fake_cargo, tmp_path):
        with pytest.raises(InvalidOverridePathError) as exc_info:
            run_build("q35", "debug", workspace, [tmp_path / "missing"],
                      environ)
        assert exc_info.value.stage == "resolve"
        assert fake_cargo.calls == []

    def test_bad_manifest(self, workspace, environ, fake_cargo):
        (workspace / "Cargo.toml").write_text("[package\n")
        with pytest.raises(ManifestParseError):
            run_build("q35", "debug", workspace, environ=environ)
        assert fake_cargo.calls == []

    def test_unknown_platform(self, workspace, environ):
        orchestrator = BuildOrchestrator("virt", "debug", workspace, environ)
        with pytest.raises(ValueError):
            orchestrator.Run()
        assert orchestrator.state == "Failed"

    def test_bootstrap_checked_before_patching(self, workspace, fake_cargo,
                                               tmp_path):
        """A missing RUSTC_BOOTSTRAP stops the build before any write."""
        core = make_crate(tmp_path, "patina_dxe_core")
        before = (workspace / "Cargo.toml").stat().st_mtime_ns
        orchestrator = BuildOrchestrator("q35", "debug", workspace,
                                         {"PATH": "/usr/bin"})

        with patch("patinaqemu.patcher._write_atomic") as write:
            with pytest.raises(BootstrapNotSetError):
                orchestrator.Run([core])

        write.assert_not_called()
        assert fake_cargo.calls == []
        assert orchestrator.state == "Failed"
        assert orchestrator.manifest is None
        assert (workspace / "Cargo.toml").stat().st_mtime_ns == before
        assert not (workspace / ".Cargo.toml.lock").exists()

    def test_failed_stage_recorded(self, workspace, environ):
        """An error outside the error taxonomy still names its stage."""
        orchestrator = BuildOrchestrator("q35", "debug", workspace, environ)

        with patch("patinaqemu.builder.RunCmd", FakeCargo()), \
                patch("patinaqemu.builder.DxeCoreBuilder.PlatformPostBuild",
                      side_effect=OSError("read-only file system")):
            with pytest.raises(OSError):
                orchestrator.Run()

        assert orchestrator.failed_stage == "build"
        assert (workspace / "Cargo.toml").read_text() == MANIFEST_TEXT
