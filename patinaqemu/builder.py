# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

import io
import logging
import shlex
from collections import namedtuple
from pathlib import Path

from edk2toolext import edk2_logging
from edk2toollib.utility_functions import RunCmd

from .errors import (ArtifactNotFoundError, BootstrapNotSetError,
                     ToolchainInvocationError)
from .platforms import get_settings_manager


__all__ = [
    "BuildResult",
    "DxeCoreBuilder",
    "build",
]


BuildResult = namedtuple("BuildResult", "success artifact_path log_excerpt")

LOG_EXCERPT_LINES = 40


def _excerpt(output, lines=LOG_EXCERPT_LINES):
    ''' Return the last `lines` lines of the toolchain output. '''
    return "\n".join(output.splitlines()[-lines:])


class DxeCoreBuilder(object):
    ''' Runs cargo for one platform and profile.

        Everything target specific comes from the SettingsManager passed in;
        the builder only turns those answers into a cargo command line and
        checks the result.
    '''

    def __init__(self, settings):
        self.settings = settings
        self.env = None

    def SetPlatformEnv(self):
        ''' Prepare the toolchain environment.

            The -Z options are refused by cargo unless the bootstrap variable
            is set.  Check it here so the user gets a clear message instead of
            a cargo error halfway through the build.
        '''
        env = self.settings.GetEnvironment()
        variable = self.settings.GetBootstrapVariable()
        required = self.settings.GetBootstrapValue()
        if env.get(variable) != required:
            raise BootstrapNotSetError(variable, required, env.get(variable))

        env.setdefault("RUST_BACKTRACE", "full")
        self.env = env
        return env

    def GetBuildParameters(self):
        ''' Return the cargo arguments as a list. '''
        settings = self.settings
        params = [
            "build",
            "--manifest-path", settings.GetManifestPath(),
            "--bin", settings.GetBinaryName(),
            "--target", settings.GetTargetTriple(),
            "--profile", settings.GetCargoProfile(),
            "--features", ",".join(settings.GetFeatures()),
            "--target-dir", settings.GetOutputRoot(),
        ]
        params.extend(settings.GetUnstableOptions())

        max_jobs = settings.GetMaxJobs()
        if max_jobs:
            params.extend(["--jobs", str(max_jobs)])
        if settings.GetTimings():
            params.append("--timings=html")
        return params

    def Build(self):
        ''' Build the DXE core and return a BuildResult.

            Raises BootstrapNotSetError before cargo runs,
            ToolchainInvocationError if cargo fails (its `result` holds the
            failed BuildResult) and ArtifactNotFoundError if cargo claims
            success but the binary is not where it must be.
        '''
        target = self.settings.GetTargetDescriptor()
        env = self.SetPlatformEnv()
        artifact_path = Path(self.settings.GetArtifactPath())

        edk2_logging.log_progress(
            f"Building {target.platform} {target.profile} DXE core "
            f"({self.settings.GetTargetTriple()})")

        output = io.StringIO()
        params = " ".join(shlex.quote(str(p))
                          for p in self.GetBuildParameters())
        ret = RunCmd(self.settings.GetToolchainCommand(), params,
                     workingdir=self.settings.GetWorkspaceRoot(),
                     outstream=output, environ=env)
        log_excerpt = _excerpt(output.getvalue())

        if ret != 0:
            raise ToolchainInvocationError(
                target, ret, BuildResult(False, None, log_excerpt))

        if not artifact_path.is_file():
            raise ArtifactNotFoundError(target, artifact_path)

        self.PlatformPostBuild(artifact_path)
        return BuildResult(True, artifact_path, log_excerpt)

    def PlatformPostBuild(self, artifact_path):
        ''' Record where the binary was built. '''
        ws_dir = Path(self.settings.GetWorkspaceRoot())

        # Store the path to the build directory in a place an upstream build
        # system can find it.
        builddirfile = ws_dir / self.settings.GetBuildDirFile()
        builddirfile.parent.mkdir(parents=True, exist_ok=True)
        builddirfile.write_text(str(artifact_path.parent))

        logging.info("Built %s", artifact_path)


def build(target, workspace, environ=None, **options):
    ''' Build `target` (a TargetDescriptor) in `workspace`.

        `options` are passed to the platform SettingsManager (jobs, features,
        timings).
    '''
    settings_class = get_settings_manager(target.platform)
    if target.arch != settings_class.ARCH:
        raise ValueError(f"{target.platform} is built for {settings_class.ARCH}, "
                         f"not {target.arch}")
    settings = settings_class(workspace, target.profile, environ, **options)
    return DxeCoreBuilder(settings).Build()
