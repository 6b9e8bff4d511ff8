# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

# =============================================================================
# SHARED FIXTURES
# =============================================================================
# A throwaway cargo workspace and a fake cargo that stands in for RunCmd.
# =============================================================================

import shlex
from pathlib import Path
from unittest.mock import patch

import pytest


MANIFEST_TEXT = """\
[package]
name = "qemu_resources"
version = "0.1.0"
edition = "2024"

# DXE core binaries, one per platform.
[[bin]]
name = "q35_dxe_core"
path = "bin/q35_dxe_core.rs"

[[bin]]
name = "sbsa_dxe_core"
path = "bin/sbsa_dxe_core.rs"

[dependencies]
log = "0.4"
patina = { version = "14.0.0", features = ["serde"] }
patina_dxe_core = "14.0.0"
patina_adv_logger = { version = "14.0.0", default-features = false }

[features]
x64 = []
aarch64 = []
enable_debugger = []
build_debugger = []
"""

LOCK_TEXT = """\
version = 4

[[package]]
name = "patina_dxe_core"
version = "14.0.0"
"""


def make_crate(root, name, dirname=None):
    ''' Write a minimal crate called `name` under `root` and return its dir. '''
    crate_dir = Path(root) / (dirname or name)
    crate_dir.mkdir(parents=True, exist_ok=True)
    (crate_dir / "Cargo.toml").write_text(
        f'[package]\nname = "{name}"\nversion = "99.0.0"\n')
    return crate_dir


class FakeCargo(object):
    ''' Records each cargo invocation and writes the binary it would build. '''

    def __init__(self, returncode=0, write_artifact=True, output="Finished"):
        self.returncode = returncode
        self.write_artifact = write_artifact
        self.output = output
        self.calls = []
        self.manifests_seen = []

    def __call__(self, cmd, parameters, workingdir=None, outstream=None,
                 environ=None, **kwargs):
        args = shlex.split(parameters)
        self.calls.append({"cmd": cmd, "args": args, "workingdir": workingdir,
                           "environ": environ})

        manifest = Path(args[args.index("--manifest-path") + 1])
        self.manifests_seen.append(manifest.read_text())

        if outstream is not None:
            outstream.write(self.output + "\n")

        if self.returncode == 0 and self.write_artifact:
            target_dir = Path(args[args.index("--target-dir") + 1])
            triple = args[args.index("--target") + 1]
            profile = args[args.index("--profile") + 1]
            binary = args[args.index("--bin") + 1]
            out_dir = target_dir / triple / ("debug" if profile == "dev"
                                             else profile)
            out_dir.mkdir(parents=True, exist_ok=True)
            (out_dir / f"{binary}.efi").write_bytes(b"MZ" + binary.encode())
        return self.returncode


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "qemu"
    ws.mkdir()
    (ws / "Cargo.toml").write_text(MANIFEST_TEXT)
    (ws / "Cargo.lock").write_text(LOCK_TEXT)
    return ws


@pytest.fixture
def environ():
    return {"RUSTC_BOOTSTRAP": "1", "PATH": "/usr/bin"}


@pytest.fixture
def fake_cargo():
    cargo = FakeCargo()
    with patch("patinaqemu.builder.RunCmd", cargo):
        yield cargo
