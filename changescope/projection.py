from __future__ import annotations

import fnmatch
import json
import posixpath
from typing import Any, Iterable, Sequence

from changescope.models import ChangeKind, ChangedFileSet, RenamePair


ALL_CHANGED = (
    ChangeKind.ADDED,
    ChangeKind.COPIED,
    ChangeKind.MODIFIED,
    ChangeKind.RENAMED,
)
ALL_MODIFIED = ALL_CHANGED + (ChangeKind.DELETED,)
ALL_CHANGED_AND_MODIFIED = tuple(ChangeKind)


def dir_name(path: str, max_depth: int | None = None, exclude_current_dir: bool = False) -> str:
    """Ancestor directory of ``path`` truncated to ``max_depth`` components."""
    parent = posixpath.dirname(path.replace("\\", "/")) or "."
    parts = parent.split("/")
    depth = min(max_depth or len(parts), len(parts))
    out = posixpath.join(*parts[:depth])
    if exclude_current_dir and out == ".":
        return ""
    return out


def project(
    paths: Iterable[str],
    dir_names: bool = False,
    max_depth: int | None = None,
    exclude_current_dir: bool = False,
) -> list[str]:
    out: dict[str, None] = {}
    for path in paths:
        value = dir_name(path, max_depth, exclude_current_dir) if dir_names else path
        if value:
            out[value] = None
    return list(out)


def _pattern_matches(path: str, pattern: str, match_directories: bool) -> bool:
    if fnmatch.fnmatchcase(path, pattern):
        return True
    # "dir/**" also covers "dir" itself, "**/x" also covers a top-level "x"
    if pattern.endswith("/**") and path == pattern[:-3]:
        return True
    if pattern.startswith("**/") and fnmatch.fnmatchcase(path, pattern[3:]):
        return True
    if match_directories:
        base = pattern.rstrip("/")
        if not any(ch in base for ch in "*?[") and path.startswith(base + "/"):
            return True
    return False


def path_matches(
    path: str,
    patterns: Sequence[str],
    ignore: Sequence[str] = (),
    match_directories: bool = True,
) -> bool:
    """True if ``path`` is selected by ``patterns`` and not by ``ignore``.

    Later patterns win; a leading ``!`` negates. An empty ``patterns`` list
    selects everything.
    """
    selected = not patterns
    for raw in patterns:
        pattern = raw.strip()
        if not pattern:
            continue
        if pattern.startswith("!"):
            if _pattern_matches(path, pattern[1:], match_directories):
                selected = False
        elif _pattern_matches(path, pattern, match_directories):
            selected = True

    if selected:
        for raw in ignore:
            pattern = raw.strip()
            if pattern and _pattern_matches(path, pattern, match_directories):
                return False
    return selected


def filter_changes(
    changes: ChangedFileSet,
    patterns: Sequence[str] = (),
    ignore: Sequence[str] = (),
    match_directories: bool = True,
) -> ChangedFileSet:
    out = ChangedFileSet()
    for kind in ChangeKind:
        for entry in changes[kind]:
            path = changes.path_of(kind, entry)
            if not path_matches(path, patterns, ignore, match_directories):
                continue
            pair = changes.renames.get(entry) if kind is ChangeKind.RENAMED else None
            if pair is not None:
                out.add_rename(pair)
            else:
                out.add(kind, entry)
    return out


def _render(paths: list[str], separator: str, as_json: bool, escape_json: bool) -> str:
    if not as_json:
        return separator.join(paths)
    value = json.dumps(paths)
    if escape_json:
        value = value.replace('"', '\\"')
    return value


def summarize(
    changes: ChangedFileSet,
    separator: str = " ",
    dir_names: bool = False,
    max_depth: int | None = None,
    exclude_current_dir: bool = False,
    as_json: bool = False,
    escape_json: bool = True,
    prefix: str = "",
    universe: ChangedFileSet | None = None,
) -> dict[str, str]:
    """Flatten a changed file set into output key/value strings.

    ``universe`` is the unfiltered set the ``only_*`` flags compare against;
    it defaults to ``changes`` itself.
    """
    groups: list[tuple[str, Sequence[ChangeKind]]] = [
        (f"{kind.label}_files", (kind,)) for kind in ChangeKind
    ]
    groups.extend(
        [
            ("all_changed_and_modified_files", ALL_CHANGED_AND_MODIFIED),
            ("all_changed_files", ALL_CHANGED),
            ("all_modified_files", ALL_MODIFIED),
        ]
    )

    key_prefix = f"{prefix}_" if prefix else ""
    out: dict[str, str] = {}
    projected: dict[str, list[str]] = {}
    for name, kinds in groups:
        paths = project(changes.paths(kinds), dir_names, max_depth, exclude_current_dir)
        projected[name] = paths
        out[f"{key_prefix}{name}"] = _render(paths, separator, as_json, escape_json)
        out[f"{key_prefix}{name}_count"] = str(len(paths))

    every = set(project((universe or changes).all_paths(), dir_names, max_depth, exclude_current_dir))
    for flag, name in (
        ("changed", "all_changed_files"),
        ("modified", "all_modified_files"),
        ("deleted", "deleted_files"),
    ):
        hits = projected[name]
        out[f"{key_prefix}any_{flag}"] = _bool(bool(hits))
        out[f"{key_prefix}only_{flag}"] = _bool(bool(hits) and set(hits) == every)

    return out


def summarize_renames(
    pairs: Sequence[RenamePair],
    files_separator: str = " ",
    as_json: bool = False,
    escape_json: bool = True,
) -> dict[str, Any]:
    values = [str(pair) for pair in pairs]
    return {
        "all_old_new_renamed_files": _render(values, files_separator, as_json, escape_json),
        "all_old_new_renamed_files_count": str(len(values)),
    }


def _bool(value: bool) -> str:
    return "true" if value else "false"
