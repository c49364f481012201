"""Commit-range resolution for push, tag and pull request triggers.

Previous-commit discovery is a tuple of named strategies tried in order; each
one looks at the trigger, the config and the working copy and either returns
a ``Candidate`` or ``None``. The first candidate wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Sequence
import logging

from changescope.git_scope import GitGateway, GitScopeError, VcsQueryError
from changescope.models import (
    DiffRange,
    EventKind,
    ResolutionConfig,
    THREE_DOT,
    TWO_DOT,
    TriggerContext,
    ZERO_SHA,
)

logger = logging.getLogger(__name__)

MAX_DEEPEN_ATTEMPTS = 10


class UnresolvableRangeError(GitScopeError):
    pass


class IdenticalCommitsError(GitScopeError):
    pass


class ConfigurationError(GitScopeError):
    pass


@dataclass(frozen=True)
class Candidate:
    sha: str
    target_branch: str | None = None


@dataclass(frozen=True)
class StrategyInput:
    trigger: TriggerContext
    config: ResolutionConfig
    current_sha: str
    target_branch: str
    diff_operator: str = TWO_DOT
    is_shallow: bool = False
    fetch_args: tuple[str, ...] = ()


Strategy = Callable[[StrategyInput, GitGateway], "Candidate | None"]


def _is_unset(sha: str | None) -> bool:
    return not sha or sha == ZERO_SHA


def _log_date_lookup(git: GitGateway, flag: str, value: str) -> str:
    """Most recent commit at or before ``value``; ``flag`` names the setting."""
    try:
        sha = git.log(["--format=%H", "-n", "1", "--date", "local", "--until", value])
    except VcsQueryError as exc:
        raise ConfigurationError(f"Invalid {flag} date: {value}. {exc}") from exc
    if not sha:
        raise ConfigurationError(f"No commit found at or before {flag} date: {value}")
    return sha


# Deepening


def deepen_attempts(limit: int = MAX_DEEPEN_ATTEMPTS) -> Iterator[int]:
    yield from range(1, limit + 1)


def ensure_diffable(
    git: GitGateway,
    sha1: str,
    sha2: str,
    operator: str,
    fetch_args: Sequence[str],
    attempts: Iterator[int] | None = None,
) -> bool:
    """Fetch more history until ``sha1<operator>sha2`` can be diffed.

    Each attempt issues one fetch and one probe. Returns False once the
    attempts run out; probe failures outside the "missing history" class
    propagate as ``VcsQueryError``.
    """
    for attempt in attempts if attempts is not None else deepen_attempts():
        logger.debug("Merge base not in local history, fetching more (attempt %d/%d)", attempt, MAX_DEEPEN_ATTEMPTS)
        git.fetch(list(fetch_args))
        if git.can_diff(sha1, sha2, operator):
            return True
    return False


# Push strategies


def explicit_base_sha(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    if inp.config.base_sha:
        return Candidate(inp.config.base_sha)
    return None


def since_date(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    if not inp.config.since:
        return None
    logger.debug("Getting base SHA for '%s'", inp.config.since)
    return Candidate(_log_date_lookup(git, "since", inp.config.since))


def nearest_tag(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    if not inp.trigger.is_tag or not inp.config.use_tags:
        return None
    found = git.previous_tag(inp.current_sha)
    if found is None:
        logger.debug("No tag found before %s", inp.current_sha)
        return None
    tag, sha = found
    return Candidate(sha, target_branch=tag)


def last_remote_commit(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    if not inp.config.since_last_remote_commit or inp.trigger.forced:
        return None
    if _is_unset(inp.trigger.before_sha):
        return None
    return Candidate(inp.trigger.before_sha)


def parent_commit(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    parent = git.parent_sha(inp.current_sha)
    return Candidate(parent) if parent else None


PUSH_STRATEGIES: tuple[Strategy, ...] = (
    explicit_base_sha,
    since_date,
    nearest_tag,
    last_remote_commit,
    parent_commit,
)


# Pull request strategies


def last_remote_commit_or_base(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    if not inp.config.since_last_remote_commit:
        return None
    before = inp.trigger.before_sha
    if not _is_unset(before) and git.verify(before):
        return Candidate(before)
    if inp.trigger.pull_request_base_sha:
        return Candidate(inp.trigger.pull_request_base_sha)
    return None


def target_branch_head(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    if not inp.target_branch:
        return None
    sha = git.branch_head_sha(f"origin/{inp.target_branch}")
    if not sha:
        return None
    if inp.is_shallow:
        ensure_diffable(git, sha, inp.current_sha, inp.diff_operator, inp.fetch_args)
    return Candidate(sha)


def pull_request_base_sha(inp: StrategyInput, git: GitGateway) -> Candidate | None:
    if inp.trigger.pull_request_base_sha:
        return Candidate(inp.trigger.pull_request_base_sha)
    return None


PULL_REQUEST_STRATEGIES: tuple[Strategy, ...] = (
    explicit_base_sha,
    last_remote_commit_or_base,
    target_branch_head,
    pull_request_base_sha,
)


def first_candidate(
    strategies: Sequence[Strategy], inp: StrategyInput, git: GitGateway
) -> Candidate | None:
    for strategy in strategies:
        candidate = strategy(inp, git)
        if candidate is not None and candidate.sha:
            logger.debug("Previous SHA from %s: %s", strategy.__name__, candidate.sha)
            return candidate
    return None


# Resolution


def fetch_extra_args(trigger: TriggerContext) -> list[str]:
    if trigger.is_tag:
        return ["--prune", "--no-recurse-submodules"]
    return ["--no-tags", "--prune", "--recurse-submodules"]


def _require_commit(git: GitGateway, sha: str, role: str) -> None:
    if not git.verify(sha):
        raise UnresolvableRangeError(
            f"Unable to locate the {role} commit '{sha}'. Make sure it exists in the checked out history."
        )


def _current_sha(git: GitGateway, config: ResolutionConfig) -> str:
    if config.until:
        logger.debug("Getting current SHA for '%s'", config.until)
        sha = _log_date_lookup(git, "until", config.until)
    else:
        # a lone ``sha`` only counts together with ``base_sha``
        sha = git.head_sha()
    _require_commit(git, sha, "current")
    logger.debug("Current SHA: %s", sha)
    return sha


def _deepen_push(
    git: GitGateway,
    trigger: TriggerContext,
    config: ResolutionConfig,
    extra: list[str],
    branch: str,
    submodules: Sequence[str],
) -> None:
    logger.info("Repository is shallow, fetching more history...")
    if trigger.is_tag:
        refspec = f"+refs/tags/{branch}:refs/tags/{branch}"
    else:
        refspec = f"+refs/heads/{branch}:refs/remotes/origin/{branch}"
    git.fetch([*extra, "-u", "--progress", f"--deepen={config.fetch_depth}", "origin", refspec])
    if submodules:
        git.fetch_submodules([*extra, "-u", "--progress", f"--deepen={config.fetch_depth}"])


def resolve_push(
    trigger: TriggerContext,
    config: ResolutionConfig,
    git: GitGateway,
    is_shallow: bool = False,
    submodules: Sequence[str] = (),
) -> DiffRange:
    target_branch = trigger.ref_name
    current_branch = target_branch
    extra = fetch_extra_args(trigger)

    if config.sha and config.base_sha:
        _require_commit(git, config.sha, "current")
        _require_commit(git, config.base_sha, "previous")
        logger.info("Previous SHA: %s", config.base_sha)
        logger.info("Current SHA: %s", config.sha)
        return DiffRange(
            previous_sha=config.base_sha,
            current_sha=config.sha,
            diff_operator=TWO_DOT,
            current_branch=current_branch,
            target_branch=target_branch,
        )

    if is_shallow:
        _deepen_push(git, trigger, config, extra, target_branch, submodules)

    current_sha = _current_sha(git, config)
    inp = StrategyInput(
        trigger=trigger,
        config=config,
        current_sha=current_sha,
        target_branch=target_branch,
        is_shallow=is_shallow,
    )
    candidate = first_candidate(PUSH_STRATEGIES, inp, git)

    previous_sha = candidate.sha if candidate else ""
    if candidate and candidate.target_branch:
        target_branch = candidate.target_branch

    parent = git.parent_sha(current_sha)
    if _is_unset(previous_sha):
        previous_sha = parent or ""

    if not previous_sha:
        raise UnresolvableRangeError(f"Unable to locate a previous commit for {current_sha}.")

    if previous_sha == current_sha:
        if parent is None:
            logger.warning("Initial commit detected, no previous commit found.")
            return DiffRange(
                previous_sha=current_sha,
                current_sha=current_sha,
                diff_operator=TWO_DOT,
                current_branch=current_branch,
                target_branch=target_branch,
                is_initial_commit=True,
            )
        previous_sha = parent

    if previous_sha == current_sha:
        raise IdenticalCommitsError(
            f"Similar commit hashes detected: previous sha {previous_sha} is equivalent to the current sha "
            f"{current_sha}. Verify that both commits are valid and increase fetch_depth to a number higher "
            f"than {config.fetch_depth}."
        )

    _require_commit(git, previous_sha, "previous")
    logger.info("Previous SHA: %s", previous_sha)
    logger.info("Current SHA: %s", current_sha)
    logger.debug("Target branch: %s, current branch: %s", target_branch, current_branch)

    return DiffRange(
        previous_sha=previous_sha,
        current_sha=current_sha,
        diff_operator=TWO_DOT,
        current_branch=current_branch,
        target_branch=target_branch,
    )


def _deepen_pull_request(
    git: GitGateway,
    trigger: TriggerContext,
    config: ResolutionConfig,
    extra: list[str],
    target_branch: str,
    submodules: Sequence[str],
) -> None:
    logger.info("Repository is shallow, fetching more history...")
    head = trigger.pull_request_head_ref
    depth = f"--deepen={config.fetch_depth}"

    code = git.fetch(
        [*extra, "-u", "--progress", "origin", f"pull/{trigger.pull_request_number}/head:{head}"]
    )
    if code != 0:
        git.fetch(
            [
                *extra,
                "-u",
                "--progress",
                depth,
                "origin",
                f"+refs/heads/{head}*:refs/remotes/origin/{head}*",
            ]
        )

    if config.since_last_remote_commit:
        return

    logger.debug("Fetching target branch %s", target_branch)
    git.fetch(
        [*extra, "-u", "--progress", depth, "origin", _target_refspec(target_branch)]
    )
    if submodules:
        git.fetch_submodules([*extra, "-u", "--progress", depth])


def _target_refspec(branch: str) -> str:
    return f"+refs/heads/{branch}:refs/remotes/origin/{branch}"


def resolve_pull_request(
    trigger: TriggerContext,
    config: ResolutionConfig,
    git: GitGateway,
    is_shallow: bool = False,
    submodules: Sequence[str] = (),
) -> DiffRange:
    target_branch = trigger.pull_request_base_ref
    current_branch = trigger.pull_request_head_ref
    if config.since_last_remote_commit:
        target_branch = current_branch
    extra = fetch_extra_args(trigger)

    # Merge-base history for forked or unknown bases is usually not local.
    diff_operator = THREE_DOT
    if not trigger.pull_request_base_ref or trigger.head_repo_fork:
        diff_operator = TWO_DOT

    if is_shallow:
        _deepen_pull_request(git, trigger, config, extra, target_branch, submodules)

    if config.sha and config.base_sha:
        _require_commit(git, config.sha, "current")
        _require_commit(git, config.base_sha, "previous")
        logger.info("Previous SHA: %s", config.base_sha)
        logger.info("Current SHA: %s", config.sha)
        return DiffRange(
            previous_sha=config.base_sha,
            current_sha=config.sha,
            diff_operator=diff_operator,
            current_branch=current_branch,
            target_branch=target_branch,
        )

    current_sha = _current_sha(git, config)
    depth = f"--deepen={config.fetch_depth}"
    inp = StrategyInput(
        trigger=trigger,
        config=config,
        current_sha=current_sha,
        target_branch=target_branch,
        diff_operator=diff_operator,
        is_shallow=is_shallow,
        fetch_args=(*extra, "-u", "--progress", depth, "origin", _target_refspec(target_branch)),
    )
    candidate = first_candidate(PULL_REQUEST_STRATEGIES, inp, git)
    previous_sha = candidate.sha if candidate else ""

    if not previous_sha or previous_sha == current_sha:
        previous_sha = trigger.pull_request_base_sha
    if not previous_sha:
        raise UnresolvableRangeError(
            f"Unable to locate a previous commit for pull request #{trigger.pull_request_number}."
        )

    if not git.can_diff(previous_sha, current_sha, diff_operator):
        logger.debug("Cannot diff %s%s%s, falling back to '..'", previous_sha, diff_operator, current_sha)
        diff_operator = TWO_DOT

    _require_commit(git, previous_sha, "previous")

    if not git.can_diff(previous_sha, current_sha, diff_operator):
        raise UnresolvableRangeError(
            f"Unable to determine a difference between {previous_sha}{diff_operator}{current_sha}"
        )

    logger.info("Previous SHA: %s", previous_sha)
    logger.info("Current SHA: %s", current_sha)
    return DiffRange(
        previous_sha=previous_sha,
        current_sha=current_sha,
        diff_operator=diff_operator,
        current_branch=current_branch,
        target_branch=target_branch,
    )


def resolve(
    trigger: TriggerContext,
    config: ResolutionConfig,
    git: GitGateway,
    submodules: Sequence[str] = (),
    is_shallow: bool | None = None,
) -> DiffRange:
    """Resolve the commit range describing what changed for ``trigger``."""
    if is_shallow is None:
        is_shallow = git.is_shallow()

    if trigger.kind is EventKind.PULL_REQUEST:
        logger.info("Running on a %s event...", trigger.event_name or "pull_request")
        return resolve_pull_request(trigger, config, git, is_shallow=is_shallow, submodules=submodules)

    logger.info("Running on a %s event...", trigger.event_name or "push")
    return resolve_push(trigger, config, git, is_shallow=is_shallow, submodules=submodules)
