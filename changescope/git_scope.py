from __future__ import annotations

from pathlib import Path
import logging
import re
import subprocess

from changescope.models import TWO_DOT

logger = logging.getLogger(__name__)

MINIMUM_GIT_VERSION = (2, 18, 0)
ALL_STATUS_FILTER = "ACDMRTUX"

# stderr fragments git prints when a range cannot be diffed yet but more
# history might fix it.
_NOT_DIFFABLE_MARKERS = (
    "no merge base",
    "bad revision",
    "unknown revision",
    "invalid symmetric difference",
)

_SUBPROJECT_RE = re.compile(r"^([+-])Subproject commit ([0-9a-f]+)", re.M)


class GitScopeError(RuntimeError):
    pass


class VcsQueryError(GitScopeError):
    pass


class GitGateway:
    """Runs git subcommands against one working copy."""

    def __init__(
        self,
        cwd: Path | str,
        extra_config: dict[str, str] | None = None,
        timeout: int = 600,
    ) -> None:
        self.cwd = Path(cwd)
        self.extra_config = dict(extra_config or {})
        self.timeout = timeout

    def for_submodule(self, path: str) -> "GitGateway":
        return GitGateway(self.cwd / path, extra_config=self.extra_config, timeout=self.timeout)

    def _command(self, args: list[str]) -> list[str]:
        cmd = ["git"]
        for key, value in self.extra_config.items():
            cmd.extend(["-c", f"{key}={value}"])
        cmd.extend(args)
        return cmd

    def run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        cmd = self._command(args)
        logger.debug("Running %s in %s", " ".join(cmd), self.cwd)
        try:
            return subprocess.run(
                cmd,
                cwd=str(self.cwd),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise VcsQueryError("git is not installed or not available in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise VcsQueryError(f"git {' '.join(args)} timed out after {self.timeout}s") from exc

    def output(self, args: list[str]) -> str:
        proc = self.run(args)
        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            raise VcsQueryError(
                f"git {' '.join(args)} failed with exit code {proc.returncode}. {stderr}".strip()
            )
        return proc.stdout or ""

    def version(self) -> tuple[int, ...]:
        out = self.output(["--version"])
        match = re.search(r"(\d+)\.(\d+)(?:\.(\d+))?", out)
        if not match:
            raise VcsQueryError(f"Unable to parse git version from '{out.strip()}'")
        return tuple(int(part or 0) for part in match.groups())

    def check_version(self, minimum: tuple[int, ...] = MINIMUM_GIT_VERSION) -> None:
        found = self.version()
        if found < minimum:
            raise VcsQueryError(
                f"git {'.'.join(map(str, minimum))} or newer is required, found {'.'.join(map(str, found))}"
            )

    def has_git_directory(self) -> bool:
        proc = self.run(["rev-parse", "--git-dir"])
        return proc.returncode == 0

    def is_shallow(self) -> bool:
        return self.output(["rev-parse", "--is-shallow-repository"]).strip() == "true"

    def verify(self, sha: str) -> bool:
        if not sha:
            return False
        proc = self.run(["rev-parse", "--quiet", "--verify", f"{sha}^{{commit}}"])
        return proc.returncode == 0

    def log(self, args: list[str]) -> str:
        return self.output(["log", *args]).strip().strip('"')

    def head_sha(self) -> str:
        return self.output(["rev-parse", "HEAD"]).strip()

    def parent_sha(self, sha: str) -> str | None:
        proc = self.run(["rev-parse", "--quiet", "--verify", f"{sha}^"])
        if proc.returncode != 0:
            return None
        return (proc.stdout or "").strip() or None

    def parent_head_sha(self) -> str | None:
        return self.parent_sha("HEAD")

    def branch_head_sha(self, branch: str) -> str | None:
        proc = self.run(["rev-parse", "--quiet", "--verify", f"{branch}^{{commit}}"])
        if proc.returncode != 0:
            return None
        return (proc.stdout or "").strip() or None

    def previous_tag(self, sha: str) -> tuple[str, str] | None:
        """Nearest tag reachable from the parent of ``sha``, with its commit."""
        proc = self.run(["describe", "--tags", "--abbrev=0", f"{sha}^"])
        if proc.returncode != 0:
            return None
        tag = (proc.stdout or "").strip()
        if not tag:
            return None
        tag_sha = self.branch_head_sha(f"refs/tags/{tag}")
        if not tag_sha:
            return None
        return tag, tag_sha

    def fetch(self, args: list[str]) -> int:
        proc = self.run(["fetch", *args])
        if proc.returncode != 0:
            logger.warning("git fetch %s exited with %s: %s", " ".join(args), proc.returncode, (proc.stderr or "").strip())
        return proc.returncode

    def fetch_submodules(self, args: list[str]) -> int:
        proc = self.run(["submodule", "foreach", "git", "fetch", *args])
        if proc.returncode != 0:
            logger.warning("Submodule fetch exited with %s: %s", proc.returncode, (proc.stderr or "").strip())
        return proc.returncode

    def list_submodule_paths(self) -> list[str]:
        out = self.output(["submodule", "status"])
        paths = []
        for line in out.splitlines():
            # " <sha> <path> (<describe>)", first char is a state flag; the path may hold spaces
            _, _, rest = line[1:].partition(" ")
            if rest.endswith(")") and " (" in rest:
                rest = rest.rpartition(" (")[0]
            if rest:
                paths.append(rest)
        return paths

    def diff_status(
        self,
        sha1: str,
        sha2: str,
        operator: str = TWO_DOT,
        filters: str = ALL_STATUS_FILTER,
        ignore_submodules: bool = False,
    ) -> list[tuple[str, ...]]:
        args = ["diff", "--name-status", f"--diff-filter={filters}"]
        if ignore_submodules:
            args.append("--ignore-submodules=all")
        args.append(f"{sha1}{operator}{sha2}")

        entries = []
        for line in self.output(args).splitlines():
            if not line.strip():
                continue
            entries.append(tuple(line.split("\t")))
        return entries

    def submodule_pointers(
        self, sha1: str, sha2: str, operator: str, path: str
    ) -> tuple[str | None, str | None]:
        out = self.output(["diff", f"{sha1}{operator}{sha2}", "--", path])
        previous = current = None
        for sign, sha in _SUBPROJECT_RE.findall(out):
            if sign == "-":
                previous = sha
            else:
                current = sha
        return previous, current

    def can_diff(self, sha1: str, sha2: str, operator: str) -> bool:
        proc = self.run(
            [
                "diff",
                "--name-only",
                "--ignore-submodules=all",
                f"--diff-filter={ALL_STATUS_FILTER}",
                f"{sha1}{operator}{sha2}",
            ]
        )
        if proc.returncode == 0:
            return True

        stderr = (proc.stderr or "").strip()
        if any(marker in stderr.lower() for marker in _NOT_DIFFABLE_MARKERS):
            logger.debug("Cannot diff %s%s%s yet: %s", sha1, operator, sha2, stderr)
            return False
        raise VcsQueryError(
            f"Failed to diff {sha1}{operator}{sha2}. {stderr or 'Check git history and ref availability.'}"
        )
