# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

'''
Applies overrides to the manifest on disk for the duration of one build.

with_patch() holds an exclusive lock on the manifest location, writes the
patched manifest, runs the build and then puts the original bytes back, no
matter how the build ends.
'''

import contextlib
import fcntl
import logging
import os
import shutil
from pathlib import Path

from .errors import ManifestPatchError, RestorationError
from .manifest import apply_overrides, serialize


__all__ = [
    "DEFAULT_COMPANIONS",
    "manifest_lock",
    "with_patch",
]


# Cargo rewrites the lock file when [patch] entries change the resolved graph.
DEFAULT_COMPANIONS = ("Cargo.lock",)


@contextlib.contextmanager
def manifest_lock(manifest_path):
    ''' Hold an exclusive lock for `manifest_path`.

        The lock lives on a hidden sidecar file next to the manifest, so the
        manifest itself can be replaced while the lock is held.  Builds of
        other checkouts use other sidecars and do not wait on each other.
    '''
    manifest_path = Path(manifest_path)
    lock_path = manifest_path.with_name(f".{manifest_path.name}.lock")
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_handle = lock_path.open("a+", encoding="utf-8")
    except OSError as e:
        raise ManifestPatchError(lock_path,
                                 f"cannot create lock file: {e}") from e

    with lock_handle:
        logging.debug("Acquiring manifest lock %s", lock_path)
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)
            logging.debug("Released manifest lock %s", lock_path)


def _write_atomic(path, data):
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_bytes(data)
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _take_snapshots(manifest_path, companions):
    ''' Return [(path, bytes or None)], manifest first. '''
    snapshots = []
    try:
        snapshots.append((manifest_path, manifest_path.read_bytes()))
        for name in companions:
            path = manifest_path.parent / name
            snapshots.append((path, path.read_bytes() if path.exists()
                              else None))
    except OSError as e:
        raise ManifestPatchError(e.filename or manifest_path,
                                 f"cannot snapshot: {e}") from e
    return snapshots


def _restore(snapshots, original_error=None):
    ''' Write every snapshot back, then report the first failure. '''
    failure = None
    for path, data in snapshots:
        try:
            if data is None:
                # Did not exist before the build.
                path.unlink(missing_ok=True)
                continue
            _write_atomic(path, data)
            if path.read_bytes() != data:
                raise OSError(f"{path} differs from its snapshot after restore")
        except OSError as e:
            logging.critical("Could not restore %s: %s", path, e)
            if failure is None:
                failure = RestorationError(path, e, original_error)
                failure.__cause__ = e
            continue
        logging.debug("Restored %s", path)

    if failure is not None:
        raise failure


def with_patch(manifest, overrides, operation, companions=DEFAULT_COMPANIONS):
    ''' Run `operation()` against `manifest` patched with `overrides`.

        The patched text is computed before anything is written, so a bad
        override leaves the disk untouched.  Once written, the snapshot is
        restored on every exit path, including KeyboardInterrupt, before the
        operation's result or error is passed on.  With no overrides nothing
        is snapshotted or written; the lock is still taken so an unpatched
        build never sees another build's patch.
    '''
    manifest_path = Path(manifest.path)
    with manifest_lock(manifest_path):
        if not overrides:
            logging.debug("No overrides, using %s as-is", manifest_path)
            return operation()

        patched_text = serialize(apply_overrides(manifest, overrides))
        snapshots = _take_snapshots(manifest_path, companions)

        try:
            try:
                _write_atomic(manifest_path, patched_text.encode("utf-8"))
            except OSError as e:
                raise ManifestPatchError(
                    manifest_path, f"cannot write patched manifest: {e}") from e
            logging.info("Patched %s with %d override(s)", manifest_path,
                         len(overrides))
            result = operation()
        except BaseException as e:
            _restore(snapshots, e)
            raise

        _restore(snapshots)
        return result
