from __future__ import annotations

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
import posixpath
from typing import Any, Iterable


ZERO_SHA = "0000000000000000000000000000000000000000"

TWO_DOT = ".."
THREE_DOT = "..."


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    TAG = "tag"


class ChangeKind(str, Enum):
    ADDED = "A"
    COPIED = "C"
    DELETED = "D"
    MODIFIED = "M"
    RENAMED = "R"
    TYPE_CHANGED = "T"
    UNMERGED = "U"
    UNKNOWN = "X"

    @classmethod
    def from_status(cls, status: str | None) -> "ChangeKind":
        """Map a git status field (``R100``, ``M``...) to its kind; never fails."""
        if not status:
            return cls.UNKNOWN
        try:
            return cls(status.strip()[:1])
        except ValueError:
            return cls.UNKNOWN

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class TriggerContext:
    kind: EventKind
    event_name: str = ""
    ref: str = ""
    ref_name: str = ""
    base_ref: str = ""
    before_sha: str = ""
    forced: bool = False
    head_repo_fork: bool = False
    pull_request_number: int | None = None
    pull_request_base_ref: str = ""
    pull_request_head_ref: str = ""
    pull_request_base_sha: str = ""
    pull_request_head_sha: str = ""
    repository: str = ""
    repository_owner: str = ""

    @property
    def is_pull_request(self) -> bool:
        return self.kind is EventKind.PULL_REQUEST

    @property
    def is_tag(self) -> bool:
        return self.kind is EventKind.TAG


@dataclass(frozen=True)
class ResolutionConfig:
    sha: str = ""
    base_sha: str = ""
    since: str = ""
    until: str = ""
    fetch_depth: int = 50
    since_last_remote_commit: bool = False
    use_tags: bool = True


@dataclass(frozen=True)
class DiffRange:
    previous_sha: str
    current_sha: str
    diff_operator: str = TWO_DOT
    current_branch: str = ""
    target_branch: str = ""
    is_initial_commit: bool = False

    @property
    def spec(self) -> str:
        return f"{self.previous_sha}{self.diff_operator}{self.current_sha}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RenamePair:
    old_path: str
    new_path: str
    separator: str = ","

    def with_prefix(self, prefix: str) -> "RenamePair":
        return RenamePair(
            old_path=posixpath.join(prefix, self.old_path),
            new_path=posixpath.join(prefix, self.new_path),
            separator=self.separator,
        )

    def __str__(self) -> str:
        return f"{self.old_path}{self.separator}{self.new_path}"


@dataclass
class ChangedFileSet:
    """Changed paths grouped by kind, in git output order.

    Every kind is always present. Paths are not deduplicated here; see
    ``changescope.projection`` for the deduplicating views. Renames added
    through ``add_rename`` are listed as ``old<sep>new``; ``paths`` reports
    their new path.
    """

    files: dict[ChangeKind, list[str]] = field(
        default_factory=lambda: {kind: [] for kind in ChangeKind}
    )
    renames: dict[str, RenamePair] = field(default_factory=dict)

    def add(self, kind: ChangeKind, path: str) -> None:
        self.files.setdefault(kind, []).append(path)

    def add_rename(self, pair: RenamePair) -> None:
        entry = str(pair)
        self.add(ChangeKind.RENAMED, entry)
        self.renames[entry] = pair

    def path_of(self, kind: ChangeKind, entry: str) -> str:
        if kind is ChangeKind.RENAMED and entry in self.renames:
            return self.renames[entry].new_path
        return entry

    def merge(self, other: "ChangedFileSet", prefix: str = "") -> None:
        for kind, entries in other.files.items():
            for entry in entries:
                pair = other.renames.get(entry) if kind is ChangeKind.RENAMED else None
                if pair is not None:
                    self.add_rename(pair.with_prefix(prefix) if prefix else pair)
                elif prefix:
                    self.add(kind, posixpath.join(prefix, entry))
                else:
                    self.add(kind, entry)

    def paths(self, kinds: Iterable[ChangeKind]) -> list[str]:
        out: list[str] = []
        for kind in kinds:
            out.extend(self.path_of(kind, entry) for entry in self.files.get(kind, []))
        return out

    def all_paths(self) -> list[str]:
        return self.paths(ChangeKind)

    def is_empty(self) -> bool:
        return not any(self.files.values())

    def __getitem__(self, kind: ChangeKind) -> list[str]:
        return self.files.get(kind, [])

    def to_dict(self) -> dict[str, list[str]]:
        return {kind.label: list(self.files.get(kind, [])) for kind in ChangeKind}


@dataclass(frozen=True)
class ScopeReport:
    changes: ChangedFileSet
    diff_range: DiffRange | None = None
    renames: list[RenamePair] = field(default_factory=list)
    submodules: list[str] = field(default_factory=list)
    source: str = "local"

    @property
    def is_initial_commit(self) -> bool:
        return bool(self.diff_range and self.diff_range.is_initial_commit)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "source": self.source,
            "range": self.diff_range.to_dict() if self.diff_range else None,
            "submodules": list(self.submodules),
            "changes": self.changes.to_dict(),
            "renames": [
                {"old_path": r.old_path, "new_path": r.new_path} for r in self.renames
            ],
        }
        return out
