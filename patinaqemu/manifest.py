# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

'''
In-memory model of the cargo dependency manifest (Cargo.toml).

A Manifest keeps the text it was loaded from.  Serializing an unpatched
manifest hands that text back untouched, so the file on disk is never
reformatted.  Overrides are rendered as a `[patch.<registry>]` table on top of
the original text.
'''

import logging
import re
import tomllib
from collections import namedtuple
from pathlib import Path

from .errors import (ConflictingOverrideError, ManifestParseError,
                     ManifestPatchError)


__all__ = [
    "DEFAULT_REGISTRY",
    "DependencyEntry",
    "OverrideEntry",
    "Manifest",
    "load",
    "load_file",
    "serialize",
    "apply_overrides",
    "get_dependency",
]


DEFAULT_REGISTRY = "crates-io"

DependencyEntry = namedtuple("DependencyEntry", "name version_spec extra_attrs")

OverrideEntry = namedtuple("OverrideEntry", "name local_path")

# `text` is the persisted form.  `overrides` is only populated on a patched
# copy returned by apply_overrides().
Manifest = namedtuple("Manifest", "path text dependencies overrides registry")

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _parse_toml(text, path):
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(path, str(e)) from e


def _stringify(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(_stringify(v) for v in value)
    return str(value)


def _dependency_tables(data, path):
    ''' Yield (section, table) for every dependency table in the manifest. '''
    for section in ("dependencies", "build-dependencies"):
        if section in data:
            yield section, data[section]

    workspace = data.get("workspace", {})
    if isinstance(workspace, dict) and "dependencies" in workspace:
        yield "workspace.dependencies", workspace["dependencies"]

    targets = data.get("target", {})
    if not isinstance(targets, dict):
        raise ManifestParseError(path, "[target] must be a table")
    for cfg, table in targets.items():
        if isinstance(table, dict) and "dependencies" in table:
            yield f"target.{cfg}.dependencies", table["dependencies"]


def _make_entry(name, value, section, path):
    if isinstance(value, str):
        return DependencyEntry(name, value, {})
    if isinstance(value, dict):
        version = value.get("version", "")
        extra = {k: _stringify(v) for k, v in value.items() if k != "version"}
        return DependencyEntry(name, _stringify(version), extra)
    raise ManifestParseError(
        path, f"dependency '{name}' in [{section}] must be a string or table")


def load(source, path=None, registry=DEFAULT_REGISTRY):
    ''' Parse manifest text into a Manifest.

        Dependencies are gathered from [dependencies], [build-dependencies],
        [workspace.dependencies] and every [target.<cfg>.dependencies] table.
        A crate named in more than one of them keeps its first entry, so
        names stay unique.
    '''
    data = _parse_toml(source, path)

    dependencies = {}
    for section, table in _dependency_tables(data, path):
        if not isinstance(table, dict):
            raise ManifestParseError(path, f"[{section}] must be a table")
        for name, value in table.items():
            entry = _make_entry(name, value, section, path)
            if name in dependencies:
                logging.debug("%s: '%s' in [%s] already declared", path, name,
                              section)
                continue
            dependencies[name] = entry

    return Manifest(path=path, text=source,
                    dependencies=tuple(dependencies.values()),
                    overrides=(), registry=registry)


def load_file(path, registry=DEFAULT_REGISTRY):
    ''' Load the manifest stored at `path`.

        The bytes are decoded as-is (no newline translation) to keep
        serialize() byte-stable.
    '''
    path = Path(path)
    try:
        text = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestParseError(path, e) from e
    return load(text, path=path, registry=registry)


def get_dependency(manifest, name):
    for entry in manifest.dependencies:
        if entry.name == name:
            return entry
    return None


def apply_overrides(manifest, entries):
    ''' Return a copy of `manifest` whose override section is `entries`. '''
    entries = tuple(entries)
    seen = {}
    for entry in entries:
        if entry.name in seen:
            raise ConflictingOverrideError(
                entry.name, [seen[entry.name], entry.local_path])
        seen[entry.name] = entry.local_path
    return manifest._replace(overrides=entries)


def _toml_key(key):
    if _BARE_KEY.match(key):
        return key
    return _toml_string(key)


def _toml_string(value):
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _override_line(entry, prefix=""):
    local_path = Path(entry.local_path).as_posix()
    return (f"{prefix}{_toml_key(entry.name)} = "
            f"{{ path = {_toml_string(local_path)} }}")


def _find_header(text, *keys):
    ''' Find the `[a.b]` header line for `keys`, quoted or bare. '''
    parts = [r'(?:' + re.escape(k) + r'|"' + re.escape(k) + r'")'
             for k in keys]
    pattern = (r'^[ \t]*\[[ \t]*' + r'[ \t]*\.[ \t]*'.join(parts) +
               r'[ \t]*\][ \t]*(?:#[^\r\n]*)?(?=\r?$)')
    return re.search(pattern, text, re.MULTILINE)


def _insert_after(text, match, lines, newline):
    end = match.end()
    return text[:end] + newline + newline.join(lines) + text[end:]


def _layouts(manifest, existing, newline):
    ''' Yield candidate patched texts, most natural layout first.

        [patch.<registry>] may already be a table header, dotted keys under
        [patch] or dotted keys at the top level.  Each layout can only be
        extended in its own style.
    '''
    text = manifest.text
    registry = _toml_key(manifest.registry)
    entries = manifest.overrides

    if existing is None:
        appended = text
        if appended and not appended.endswith(newline):
            appended += newline
        if appended:
            appended += newline
        appended += f"[patch.{registry}]{newline}"
        appended += newline.join(_override_line(e) for e in entries) + newline
        yield appended

    header = _find_header(text, "patch", manifest.registry)
    if header is not None:
        yield _insert_after(text, header,
                            [_override_line(e) for e in entries], newline)

    header = _find_header(text, "patch")
    if header is not None:
        yield _insert_after(text, header,
                            [_override_line(e, registry + ".")
                             for e in entries], newline)

    yield "".join(_override_line(e, f"patch.{registry}.") + newline
                  for e in entries) + text


def _applied(text, manifest):
    ''' Whether `text` parses and carries every override of `manifest`. '''
    try:
        patched = tomllib.loads(text)
    except tomllib.TOMLDecodeError:
        return False
    table = patched.get("patch", {}).get(manifest.registry, {})
    for entry in manifest.overrides:
        current = table.get(entry.name)
        if not isinstance(current, dict) or \
                current.get("path") != Path(entry.local_path).as_posix():
            return False
    return True


def serialize(manifest):
    ''' Render `manifest` back to text.

        Without overrides this is the loaded text, byte for byte.  With
        overrides, one `name = { path = "..." }` entry per override is added
        to [patch.<registry>]: as a new table at the end if the manifest has
        none, otherwise in whatever style the manifest already declares it.
        An inline table cannot be extended and raises ManifestPatchError.
    '''
    if not manifest.overrides:
        return manifest.text

    newline = "\r\n" if "\r\n" in manifest.text else "\n"
    data = _parse_toml(manifest.text, manifest.path)
    patch_table = data.get("patch", {})
    if not isinstance(patch_table, dict):
        raise ManifestParseError(manifest.path, "[patch] must be a table")
    existing = patch_table.get(manifest.registry)

    if existing is not None:
        for entry in manifest.overrides:
            if entry.name in existing:
                current = existing[entry.name]
                where = current.get("path", manifest.path) \
                    if isinstance(current, dict) else manifest.path
                raise ConflictingOverrideError(
                    entry.name, [where, entry.local_path])

    for text in _layouts(manifest, existing, newline):
        if _applied(text, manifest):
            return text

    raise ManifestPatchError(
        manifest.path,
        f"unsupported layout: [patch.{manifest.registry}] cannot be extended "
        f"(is it an inline table?); declare it as a [patch.{manifest.registry}] "
        f"section instead")
