from __future__ import annotations

from pathlib import Path
import logging

from changescope.classifier import classify, resolve_renames
from changescope.config import Settings
from changescope.git_scope import GitGateway, GitScopeError
from changescope.github_api import list_pull_request_files
from changescope.models import ScopeReport, TriggerContext
from changescope.resolver import resolve

logger = logging.getLogger(__name__)

_API_UNSUPPORTED = ("sha", "base_sha", "since", "until", "since_last_remote_commit")


def _collect_from_api(trigger: TriggerContext, settings: Settings) -> ScopeReport:
    for name in _API_UNSUPPORTED:
        if getattr(settings.resolution, name):
            logger.warning("'%s' is not supported when using the GitHub API to get changed files", name)
    if settings.output.include_all_old_new_renamed_files:
        logger.warning(
            "'include_all_old_new_renamed_files' is not supported when using the GitHub API to get changed files"
        )

    changes = list_pull_request_files(
        repository=trigger.repository,
        number=trigger.pull_request_number or 0,
        token=settings.output.token or "",
        api_url=settings.output.api_url,
        split_renames=settings.output.output_renamed_files_as_deleted_and_added,
        rename_separator=settings.output.old_new_separator,
    )
    return ScopeReport(changes=changes, source="api")


def collect_changes(
    trigger: TriggerContext,
    settings: Settings,
    workdir: Path,
    git: GitGateway | None = None,
) -> ScopeReport:
    """Resolve the commit range for ``trigger`` and classify what changed."""
    git = git or GitGateway(workdir, extra_config=settings.output.git_config())

    if not git.has_git_directory():
        if settings.output.token and trigger.pull_request_number:
            logger.info("No local .git directory, using the GitHub API")
            return _collect_from_api(trigger, settings)
        raise GitScopeError(
            f"Can't find a local .git directory in {workdir}. Check out the repository first."
        )

    logger.info("Using local .git directory")
    git.check_version()

    is_shallow = git.is_shallow()
    submodules = git.list_submodule_paths()
    if submodules:
        logger.debug("Submodules: %s", ", ".join(submodules))

    diff_range = resolve(
        trigger, settings.resolution, git, submodules=submodules, is_shallow=is_shallow
    )
    if diff_range.is_initial_commit:
        logger.info("This is the first commit for this repository; nothing to compare.")
        return ScopeReport(diff_range=diff_range, changes=classify(git, diff_range), submodules=submodules)

    logger.info(
        "Retrieving changes between %s (%s) -> %s (%s)",
        diff_range.previous_sha,
        diff_range.target_branch,
        diff_range.current_sha,
        diff_range.current_branch,
    )
    changes = classify(
        git,
        diff_range,
        submodules,
        split_renames=settings.output.output_renamed_files_as_deleted_and_added,
        rename_separator=settings.output.old_new_separator,
    )

    renames = []
    if settings.output.include_all_old_new_renamed_files:
        renames = resolve_renames(
            git, diff_range, submodules, separator=settings.output.old_new_separator
        )

    return ScopeReport(
        diff_range=diff_range,
        changes=changes,
        renames=renames,
        submodules=submodules,
    )
