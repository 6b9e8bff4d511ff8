# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

'''
Maps local source trees given on the command line to the crates they provide.

Each path must hold a Cargo.toml whose [package] table names exactly one
crate.  Everything is validated before the manifest is touched.
'''

import logging
import tomllib
from pathlib import Path

from .errors import ConflictingOverrideError, InvalidOverridePathError
from .manifest import OverrideEntry, get_dependency


__all__ = [
    "DESCRIPTOR_NAME",
    "find_descriptor",
    "read_package_name",
    "resolve_overrides",
    "check_overrides",
]


DESCRIPTOR_NAME = "Cargo.toml"


def find_descriptor(path):
    ''' Return the Cargo.toml for `path`.

        `path` may be the crate directory or the Cargo.toml itself.
    '''
    path = Path(path).expanduser()
    if not path.exists():
        raise InvalidOverridePathError(path, "path does not exist")

    if path.is_file():
        if path.name != DESCRIPTOR_NAME:
            raise InvalidOverridePathError(
                path, f"expected a directory or a {DESCRIPTOR_NAME}")
        return path

    descriptor = path / DESCRIPTOR_NAME
    if not descriptor.is_file():
        raise InvalidOverridePathError(path, f"no {DESCRIPTOR_NAME} found")
    return descriptor


def read_package_name(descriptor):
    try:
        data = tomllib.loads(Path(descriptor).read_bytes().decode("utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise InvalidOverridePathError(
            descriptor, f"cannot read descriptor: {e}") from e

    package = data.get("package")
    if not isinstance(package, dict):
        if "workspace" in data:
            reason = ("is a workspace root without a [package]; pass one of "
                      "its member crates instead")
        else:
            reason = "declares no [package]"
        raise InvalidOverridePathError(descriptor, reason)

    name = package.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidOverridePathError(
            descriptor, "[package] has no usable 'name'")
    return name.strip()


def resolve_overrides(paths):
    ''' Turn local paths into OverrideEntry values, preserving order.

        Raises InvalidOverridePathError for a path that does not describe a
        crate and ConflictingOverrideError if two paths provide the same
        crate, since either copy could be meant.
    '''
    entries = []
    seen = {}
    for raw_path in paths:
        descriptor = find_descriptor(raw_path)
        name = read_package_name(descriptor)
        local_path = descriptor.parent.resolve()

        if name in seen:
            raise ConflictingOverrideError(name, [seen[name], local_path])
        seen[name] = local_path

        logging.info("Override %s -> %s", name, local_path)
        entries.append(OverrideEntry(name, local_path))
    return entries


def _is_direct_dependency(manifest, package):
    ''' Match by key, or by `package` for a renamed dependency. '''
    if get_dependency(manifest, package) is not None:
        return True
    return any(dep.extra_attrs.get("package") == package
               for dep in manifest.dependencies)


def check_overrides(manifest, entries):
    ''' Warn about overrides that are not direct dependencies.

        Cargo still honors a patch for a transitive crate, so this is not an
        error.  Returns the names that were not found.
    '''
    missing = []
    for entry in entries:
        if not _is_direct_dependency(manifest, entry.name):
            logging.warning("%s is not a direct dependency in %s; it will only "
                            "apply if a dependency pulls it in",
                            entry.name, manifest.path)
            missing.append(entry.name)
    return missing
