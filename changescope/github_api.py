from __future__ import annotations

from typing import Any
import logging

import requests

from changescope.git_scope import GitScopeError
from changescope.models import ChangeKind, ChangedFileSet, RenamePair

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
PER_PAGE = 100

GITHUB_STATUS_MAP = {
    "added": ChangeKind.ADDED,
    "removed": ChangeKind.DELETED,
    "modified": ChangeKind.MODIFIED,
    "renamed": ChangeKind.RENAMED,
    "copied": ChangeKind.COPIED,
    "changed": ChangeKind.TYPE_CHANGED,
}


class GitHubApiError(GitScopeError):
    pass


def _files_url(api_url: str, repository: str, number: int) -> str:
    base = (api_url or DEFAULT_API_URL).rstrip("/")
    return f"{base}/repos/{repository}/pulls/{number}/files"


def _headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def _add_item(
    changes: ChangedFileSet, item: dict[str, Any], split_renames: bool, separator: str
) -> None:
    filename = item.get("filename")
    if not filename:
        return
    kind = GITHUB_STATUS_MAP.get(str(item.get("status", "")), ChangeKind.UNKNOWN)
    previous = item.get("previous_filename")
    if kind is ChangeKind.RENAMED and previous:
        if split_renames:
            changes.add(ChangeKind.DELETED, str(previous))
            changes.add(ChangeKind.ADDED, str(filename))
        else:
            changes.add_rename(RenamePair(str(previous), str(filename), separator))
        return
    changes.add(kind, str(filename))


def list_pull_request_files(
    repository: str,
    number: int,
    token: str,
    api_url: str = DEFAULT_API_URL,
    timeout_seconds: int = 30,
    session: requests.Session | None = None,
    split_renames: bool = False,
    rename_separator: str = ",",
) -> ChangedFileSet:
    """List the files of a pull request through the GitHub REST API."""
    http = session or requests.Session()
    url: str | None = _files_url(api_url, repository, number)
    params: dict[str, Any] | None = {"per_page": PER_PAGE}
    changes = ChangedFileSet()
    pages = 0

    logger.info("Getting changed files from the GitHub API...")
    while url:
        try:
            resp = http.get(url, headers=_headers(token), params=params, timeout=timeout_seconds)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise GitHubApiError(f"Failed to list files for {repository}#{number}: {exc}") from exc
        except ValueError as exc:
            raise GitHubApiError(f"Invalid JSON listing files for {repository}#{number}") from exc

        if not isinstance(data, list):
            raise GitHubApiError(f"Unexpected response listing files for {repository}#{number}")
        for item in data:
            if isinstance(item, dict):
                _add_item(changes, item, split_renames, rename_separator)

        pages += 1
        # the next link already carries the query string
        url = resp.links.get("next", {}).get("url")
        params = None

    logger.debug("Fetched %d page(s) of pull request files", pages)
    return changes
