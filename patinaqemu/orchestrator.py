# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

'''
Top level sequencing of a DXE core build.

    Idle -> ParsedTarget -> ResolvedOverrides -> Patched -> Building
         -> Restored -> Done

Any error moves the orchestrator to Failed and is re-raised.  Patched,
Building and Restored happen inside a single with_patch() call, so the
manifest is back to its original bytes before an error leaves Run().
'''

import logging

from edk2toolext import edk2_logging

from .builder import DxeCoreBuilder
from .manifest import load_file
from .overrides import check_overrides, resolve_overrides
from .patcher import with_patch
from .platforms import get_settings_manager, make_target


__all__ = [
    "BuildOrchestrator",
    "STAGES",
    "run_build",
]


IDLE = "Idle"
PARSED_TARGET = "ParsedTarget"
RESOLVED_OVERRIDES = "ResolvedOverrides"
PATCHED = "Patched"
BUILDING = "Building"
RESTORED = "Restored"
DONE = "Done"
FAILED = "Failed"

# Stage reported for a failure raised while in each state.
STAGES = {
    IDLE: "parse",
    PARSED_TARGET: "parse",
    RESOLVED_OVERRIDES: "patch",
    PATCHED: "build",
    BUILDING: "build",
    RESTORED: "restore",
}


class BuildOrchestrator(object):
    ''' Builds one platform/profile once.

        Owns the Manifest and TargetDescriptor for the length of Run().  An
        instance cannot be run twice.
    '''

    def __init__(self, platform, profile, workspace, environ=None,
                 **build_options):
        self.state = IDLE
        self.target = None
        self.settings = None
        self.manifest = None
        self.overrides = []
        self.result = None
        self.failed_stage = None
        self._builder = None
        self._platform = platform
        self._profile = profile
        self._workspace = workspace
        self._environ = environ
        self._build_options = build_options

    def _Transition(self, state):
        logging.debug("%s -> %s", self.state, state)
        self.state = state

    def Run(self, local_paths=()):
        ''' Build the target, overriding crates with `local_paths`.

            Returns the BuildResult.  Errors derive from PatinaBuildError and
            say which stage failed.
        '''
        if self.state != IDLE:
            raise RuntimeError(f"Build already ran (state {self.state})")

        try:
            self.target = make_target(self._platform, self._profile)
            settings_class = get_settings_manager(self.target.platform)
            self.settings = settings_class(self._workspace, self.target.profile,
                                           self._environ,
                                           **self._build_options)
            self._Transition(PARSED_TARGET)

            # Check the toolchain environment before waiting on the lock or
            # touching the manifest.
            self._builder = DxeCoreBuilder(self.settings)
            self._builder.SetPlatformEnv()

            edk2_logging.log_progress("Loading " +
                                      self.settings.GetManifestPath())
            self.manifest = load_file(self.settings.GetManifestPath())

            self.overrides = resolve_overrides(local_paths)
            check_overrides(self.manifest, self.overrides)
            self._Transition(RESOLVED_OVERRIDES)

            self.result = with_patch(self.manifest, self.overrides,
                                     self._Build)
            self._Transition(RESTORED)
        except BaseException:
            self.failed_stage = STAGES.get(self.state, "build")
            self._Transition(FAILED)
            raise

        self._Transition(DONE)
        return self.result

    def _Build(self):
        self._Transition(PATCHED)
        self._Transition(BUILDING)
        return self._builder.Build()


def run_build(platform, profile, workspace, local_paths=(), environ=None,
              **build_options):
    return BuildOrchestrator(platform, profile, workspace, environ,
                             **build_options).Run(local_paths)
