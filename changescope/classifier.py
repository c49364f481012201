from __future__ import annotations

from typing import Sequence
import logging

from changescope.git_scope import GitGateway
from changescope.models import ChangeKind, ChangedFileSet, DiffRange, RenamePair

logger = logging.getLogger(__name__)


def _parse_status_entries(
    entries: Sequence[tuple[str, ...]], split_renames: bool, separator: str = ","
) -> ChangedFileSet:
    """
    Group ``git diff --name-status`` entries by kind.

    Handles:
        - Normal: ("M", "path/file.py")
        - Rename/copy: ("R100", "old.py", "new.py")
        - Missing status: ("", "path") or ("path",)

    A rename is one ``old<separator>new`` entry, or ``D old`` + ``A new``
    when ``split_renames`` is set.
    """
    changes = ChangedFileSet()

    for entry in entries:
        if len(entry) == 1:
            changes.add(ChangeKind.UNKNOWN, entry[0])
            continue

        kind = ChangeKind.from_status(entry[0])
        if kind in (ChangeKind.RENAMED, ChangeKind.COPIED) and len(entry) >= 3:
            old_path, new_path = entry[1], entry[2]
            if kind is ChangeKind.COPIED:
                changes.add(kind, new_path)
            elif split_renames:
                changes.add(ChangeKind.DELETED, old_path)
                changes.add(ChangeKind.ADDED, new_path)
            else:
                changes.add_rename(RenamePair(old_path, new_path, separator))
        else:
            changes.add(kind, entry[1])

    return changes


def _submodule_ranges(
    git: GitGateway, diff_range: DiffRange, submodules: Sequence[str]
) -> list[tuple[str, DiffRange]]:
    """Ranges for submodules whose pointer moved between both parent commits."""
    out = []
    for path in submodules:
        previous, current = git.submodule_pointers(
            diff_range.previous_sha, diff_range.current_sha, diff_range.diff_operator, path
        )
        if not previous or not current:
            logger.debug("Submodule %s has no before/after pointers in this range", path)
            continue
        out.append(
            (
                path,
                DiffRange(
                    previous_sha=previous,
                    current_sha=current,
                    diff_operator=diff_range.diff_operator,
                ),
            )
        )
    return out


def classify(
    git: GitGateway,
    diff_range: DiffRange,
    submodules: Sequence[str] = (),
    split_renames: bool = False,
    rename_separator: str = ",",
) -> ChangedFileSet:
    """Classify every path changed in ``diff_range``, submodule internals included."""
    if diff_range.is_initial_commit:
        return ChangedFileSet()

    entries = git.diff_status(
        diff_range.previous_sha, diff_range.current_sha, diff_range.diff_operator
    )
    changes = _parse_status_entries(entries, split_renames, rename_separator)

    for path, sub_range in _submodule_ranges(git, diff_range, submodules):
        sub_git = git.for_submodule(path)
        sub_entries = sub_git.diff_status(
            sub_range.previous_sha, sub_range.current_sha, sub_range.diff_operator
        )
        changes.merge(
            _parse_status_entries(sub_entries, split_renames, rename_separator), prefix=path
        )

    return changes


def _rename_pairs(
    entries: Sequence[tuple[str, ...]], separator: str
) -> list[RenamePair]:
    pairs = []
    for entry in entries:
        if len(entry) < 3:
            continue
        pairs.append(RenamePair(old_path=entry[1], new_path=entry[2], separator=separator))
    return pairs


def resolve_renames(
    git: GitGateway,
    diff_range: DiffRange,
    submodules: Sequence[str] = (),
    separator: str = ",",
) -> list[RenamePair]:
    if diff_range.is_initial_commit:
        return []

    entries = git.diff_status(
        diff_range.previous_sha,
        diff_range.current_sha,
        diff_range.diff_operator,
        filters="R",
        ignore_submodules=True,
    )
    pairs = _rename_pairs(entries, separator)

    for path, sub_range in _submodule_ranges(git, diff_range, submodules):
        sub_entries = git.for_submodule(path).diff_status(
            sub_range.previous_sha,
            sub_range.current_sha,
            sub_range.diff_operator,
            filters="R",
            ignore_submodules=True,
        )
        pairs.extend(pair.with_prefix(path) for pair in _rename_pairs(sub_entries, separator))

    return pairs
