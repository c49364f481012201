from __future__ import annotations

from pathlib import Path
from typing import Callable

from changescope.git_scope import GitGateway


class FakeGit(GitGateway):
    """In-memory gateway: a commit graph plus scripted diff answers."""

    def __init__(
        self,
        head: str = "c2",
        parents: dict[str, str] | None = None,
        known: set[str] | None = None,
        branches: dict[str, str] | None = None,
        tags: dict[str, tuple[str, str]] | None = None,
        shallow: bool = False,
        log_results: dict[str, str] | None = None,
        status: dict[str, list[tuple[str, ...]]] | None = None,
        pointers: dict[str, tuple[str | None, str | None]] | None = None,
        submodules: list[str] | None = None,
        can_diff: Callable[[str, str, str], bool] | None = None,
        fetch_codes: list[int] | None = None,
        children: dict[str, "FakeGit"] | None = None,
        has_git: bool = True,
        cwd: Path | str = ".",
    ) -> None:
        super().__init__(cwd)
        self.head = head
        self.parents = parents if parents is not None else {"c2": "c1"}
        self.known = known if known is not None else {head, *self.parents, *self.parents.values()}
        self.branches = branches or {}
        self.tags = tags or {}
        self.shallow = shallow
        self.log_results = log_results or {}
        self.status = status or {}
        self.pointers = pointers or {}
        self.submodules = submodules or []
        self._can_diff = can_diff or (lambda a, b, op: True)
        self.fetch_codes = list(fetch_codes or [])
        self.children = children or {}
        self.has_git = has_git
        self.fetches: list[list[str]] = []
        self.submodule_fetches: list[list[str]] = []
        self.probes: list[tuple[str, str, str]] = []
        self.status_queries: list[tuple[str, str, str, str]] = []

    def for_submodule(self, path: str) -> "FakeGit":
        return self.children[path]

    def run(self, args):  # pragma: no cover - every call is overridden
        raise AssertionError(f"unexpected git call: {args}")

    def has_git_directory(self) -> bool:
        return self.has_git

    def check_version(self, minimum=(2, 18, 0)) -> None:
        return None

    def is_shallow(self) -> bool:
        return self.shallow

    def verify(self, sha: str) -> bool:
        return bool(sha) and sha in self.known

    def log(self, args: list[str]) -> str:
        value = args[-1]
        return self.log_results.get(value, "")

    def head_sha(self) -> str:
        return self.head

    def parent_sha(self, sha: str) -> str | None:
        return self.parents.get(sha)

    def branch_head_sha(self, branch: str) -> str | None:
        return self.branches.get(branch)

    def previous_tag(self, sha: str) -> tuple[str, str] | None:
        return self.tags.get(sha)

    def fetch(self, args: list[str]) -> int:
        self.fetches.append(list(args))
        return self.fetch_codes.pop(0) if self.fetch_codes else 0

    def fetch_submodules(self, args: list[str]) -> int:
        self.submodule_fetches.append(list(args))
        return 0

    def list_submodule_paths(self) -> list[str]:
        return list(self.submodules)

    def diff_status(self, sha1, sha2, operator="..", filters="ACDMRTUX", ignore_submodules=False):
        self.status_queries.append((sha1, sha2, operator, filters))
        entries = self.status.get(f"{sha1}{operator}{sha2}", [])
        if filters == "ACDMRTUX":
            return list(entries)
        return [e for e in entries if e and e[0][:1] in filters]

    def submodule_pointers(self, sha1, sha2, operator, path):
        return self.pointers.get(path, (None, None))

    def can_diff(self, sha1: str, sha2: str, operator: str) -> bool:
        self.probes.append((sha1, sha2, operator))
        return self._can_diff(sha1, sha2, operator)
