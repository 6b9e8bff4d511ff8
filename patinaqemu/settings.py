# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

import os
from collections import namedtuple
from pathlib import Path


__all__ = [
    "PROFILES",
    "ARCH_TRIPLES",
    "BOOTSTRAP_VARIABLE",
    "BOOTSTRAP_VALUE",
    "TargetDescriptor",
    "DxeCoreSettingsManager",
]


PROFILES = ("debug", "release")

ARCH_TRIPLES = {
    "x64": "x86_64-unknown-uefi",
    "aarch64": "aarch64-unknown-uefi",
}

# Profile names as cargo spells them.  Output directories keep our names.
CARGO_PROFILES = {
    "debug": "dev",
    "release": "release",
}

# Lets a stable toolchain accept -Z options.
BOOTSTRAP_VARIABLE = "RUSTC_BOOTSTRAP"
BOOTSTRAP_VALUE = "1"

TargetDescriptor = namedtuple("TargetDescriptor", "platform arch profile")


class DxeCoreSettingsManager(object):
    ''' Base SettingsManager for QEMU DXE core builds.

        Answers every question the builder has about a platform: where the
        workspace is, what to hand cargo and where the binary ends up.
        Platforms provide a subclass under patinaqemu.platforms and must
        implement GetName() and set ARCH.

        All configuration comes in through the constructor.  `environ` is the
        environment the toolchain will run with; it defaults to a copy of the
        current process environment.
    '''

    ARCH = None

    def __init__(self, workspace, profile="debug", environ=None, jobs=None,
                 features=(), timings=False):
        if profile not in PROFILES:
            raise ValueError(f"Unknown profile '{profile}', expected one of "
                             + ", ".join(PROFILES))
        self._workspace = Path(workspace).resolve()
        self._target = profile
        self._environ = dict(os.environ if environ is None else environ)
        self._jobs = jobs
        self._extra_features = list(features)
        self._timings = timings

    def GetName(self):
        ''' Get the name of the platform being built. '''
        raise NotImplementedError(
            "GetName() must be implemented in DxeCoreSettingsManager "
            "subclasses."
        )

    def GetArchitecture(self):
        ''' Get the architecture the platform runs on.

            Taken from the ARCH class attribute, which each platform sets.
            Callers never choose it.
        '''
        if self.ARCH is None:
            raise NotImplementedError(
                "ARCH must be set in DxeCoreSettingsManager subclasses."
            )
        return self.ARCH

    #######################################
    # Workspace

    def GetWorkspaceRoot(self):
        ''' Return the root of the workspace as a string. '''
        return str(self._workspace)

    def GetManifestPath(self):
        ''' Return the path of the dependency manifest cargo reads. '''
        return str(self._workspace / "Cargo.toml")

    def GetEnvironment(self):
        ''' Return a copy of the environment the toolchain runs with. '''
        return dict(self._environ)

    def GetBuildDirFile(self):
        ''' Return the file name of the build dir file.

            This file will contain the full path to the directory holding the
            binary, for upstream tooling.  This default implementation will
            use "images/builddir_{platform_name}_{target}.txt".

            Returns a path relative to the workspace.
        '''
        platform_name = self.GetName()
        target = self.GetTarget()
        return str(Path("images") / f"builddir_{platform_name}_{target}.txt")

    #######################################
    # Target

    def GetTarget(self):
        ''' Return the build profile, "debug" or "release". '''
        return self._target

    def GetTargetDescriptor(self):
        return TargetDescriptor(self.GetName(), self.GetArchitecture(),
                                self.GetTarget())

    def GetTargetTriple(self):
        return ARCH_TRIPLES[self.GetArchitecture()]

    def GetCargoProfile(self):
        return CARGO_PROFILES[self.GetTarget()]

    def GetBinaryName(self):
        ''' Return the cargo binary target, e.g. "q35_dxe_core". '''
        return f"{self.GetName()}_dxe_core"

    def GetArtifactExtension(self):
        return "efi"

    def GetFeatures(self):
        ''' Return the cargo features to enable.

            The binaries are gated on a feature named after the architecture.
        '''
        return [self.GetArchitecture()] + self._extra_features

    #######################################
    # Toolchain

    def GetToolchainCommand(self):
        ''' Return the cargo executable, honoring the CARGO env var. '''
        return self._environ.get("CARGO") or "cargo"

    def GetBootstrapVariable(self):
        return BOOTSTRAP_VARIABLE

    def GetBootstrapValue(self):
        return BOOTSTRAP_VALUE

    def GetBuildStdCrates(self):
        ''' Crates built from source instead of a prebuilt std. '''
        return ("core", "compiler_builtins", "alloc")

    def GetBuildStdFeatures(self):
        return ("compiler-builtins-mem",)

    def GetUnstableOptions(self):
        ''' Return the -Z options every DXE core build requires. '''
        return [
            "-Zbuild-std=" + ",".join(self.GetBuildStdCrates()),
            "-Zbuild-std-features=" + ",".join(self.GetBuildStdFeatures()),
            "-Zunstable-options",
        ]

    def GetMaxJobs(self):
        ''' Return the --jobs value, or `None` to let cargo decide. '''
        return self._jobs

    def GetTimings(self):
        ''' Whether to ask cargo for an HTML timing report. '''
        return self._timings

    #######################################
    # Output

    def GetOutputRoot(self):
        ''' Return cargo's target directory.

            Defers to CARGO_TARGET_DIR, relative to the workspace if it is not
            absolute.  Otherwise "<workspace>/target".
        '''
        target_dir = self._environ.get("CARGO_TARGET_DIR")
        if target_dir:
            return str(self._workspace / Path(target_dir).expanduser())
        return str(self._workspace / "target")

    def GetArtifactPath(self):
        ''' Return where the built binary lands.

            <output-root>/<triple>/<profile>/<platform>_dxe_core.efi
        '''
        return str(Path(self.GetOutputRoot()) / self.GetTargetTriple() /
                   self.GetTarget() /
                   f"{self.GetBinaryName()}.{self.GetArtifactExtension()}")
