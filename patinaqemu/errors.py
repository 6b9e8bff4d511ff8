# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

'''
Errors raised while building a DXE core.

Every error knows the stage it belongs to and the exit code the command line
reports for it.
'''

__all__ = [
    "PatinaBuildError",
    "ManifestParseError",
    "InvalidOverridePathError",
    "ManifestPatchError",
    "ConflictingOverrideError",
    "ToolchainInvocationError",
    "ArtifactNotFoundError",
    "RestorationError",
    "BootstrapNotSetError",
]


class PatinaBuildError(Exception):
    ''' Base class for build orchestration failures. '''
    stage = "build"
    exit_code = 1


class ManifestParseError(PatinaBuildError):
    stage = "parse"
    exit_code = 2

    def __init__(self, path, reason):
        super().__init__(f"Cannot parse manifest {path}: {reason}")
        self.path = path
        self.reason = reason


class InvalidOverridePathError(PatinaBuildError):
    stage = "resolve"
    exit_code = 3

    def __init__(self, path, reason):
        super().__init__(f"Invalid override path {path}: {reason}")
        self.path = path
        self.reason = reason


class ConflictingOverrideError(PatinaBuildError):
    ''' Two overrides (or an override and the manifest) name one package. '''
    stage = "resolve"
    exit_code = 3

    def __init__(self, name, paths):
        paths = [str(p) for p in paths]
        super().__init__(
            f"Package '{name}' is overridden more than once: "
            + ", ".join(paths))
        self.name = name
        self.paths = paths


class ToolchainInvocationError(PatinaBuildError):
    exit_code = 4

    def __init__(self, target, returncode, result=None):
        super().__init__(
            f"cargo failed for {target.platform} {target.profile} "
            f"({target.arch}) with exit code {returncode}")
        self.target = target
        self.returncode = returncode
        self.result = result


class ArtifactNotFoundError(PatinaBuildError):
    ''' The toolchain reported success but the binary is missing. '''
    exit_code = 5

    def __init__(self, target, artifact_path):
        super().__init__(
            f"cargo reported success for {target.platform} {target.profile} "
            f"but {artifact_path} does not exist")
        self.target = target
        self.artifact_path = artifact_path


class RestorationError(PatinaBuildError):
    ''' The manifest could not be put back.  Always fatal.

        If the restore was attempted while another error was unwinding, that
        error is kept in `original_error` and included in the message.
    '''
    stage = "restore"
    exit_code = 6

    def __init__(self, path, reason, original_error=None):
        message = f"Failed to restore {path}: {reason}"
        if original_error is not None:
            message += (f" (while handling {type(original_error).__name__}: "
                        f"{original_error})")
        super().__init__(message)
        self.path = path
        self.reason = reason
        self.original_error = original_error


class BootstrapNotSetError(PatinaBuildError):
    exit_code = 7

    def __init__(self, variable, required, actual):
        super().__init__(
            f"{variable} must be set to '{required}' to allow the unstable "
            f"build-std options (currently {actual!r}).  "
            f"Run: export {variable}={required}")
        self.variable = variable
        self.required = required
        self.actual = actual


class ManifestPatchError(PatinaBuildError):
    ''' The patched manifest could not be prepared or written.

        Raised before the build runs, e.g. for an unwritable workspace or a
        [patch] layout the overrides cannot be added to.
    '''
    stage = "patch"
    exit_code = 8

    def __init__(self, path, reason):
        super().__init__(f"Cannot patch {path}: {reason}")
        self.path = path
        self.reason = reason
