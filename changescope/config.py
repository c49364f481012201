from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping
import json
import os

import yaml

from changescope.models import EventKind, ResolutionConfig, TriggerContext


DEFAULT_OUTPUT = {
    "separator": " ",
    "old_new_separator": ",",
    "old_new_files_separator": " ",
    "dir_names": False,
    "dir_names_max_depth": None,
    "dir_names_exclude_current_dir": False,
    "json": False,
    "escape_json": True,
    "include_all_old_new_renamed_files": False,
    "output_renamed_files_as_deleted_and_added": False,
    "quotepath": True,
    "diff_relative": False,
    "match_directories": True,
}


@dataclass(frozen=True)
class OutputOptions:
    separator: str = " "
    old_new_separator: str = ","
    old_new_files_separator: str = " "
    dir_names: bool = False
    dir_names_max_depth: int | None = None
    dir_names_exclude_current_dir: bool = False
    json: bool = False
    escape_json: bool = True
    include_all_old_new_renamed_files: bool = False
    output_renamed_files_as_deleted_and_added: bool = False
    quotepath: bool = True
    diff_relative: bool = False
    files: list[str] = field(default_factory=list)
    files_ignore: list[str] = field(default_factory=list)
    match_directories: bool = True
    token: str | None = None
    api_url: str = "https://api.github.com"

    def git_config(self) -> dict[str, str]:
        out = {"core.quotepath": "on" if self.quotepath else "off"}
        if self.diff_relative:
            out["diff.relative"] = "true"
        return out


@dataclass(frozen=True)
class Settings:
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    output: OutputOptions = field(default_factory=OutputOptions)
    file_groups: dict[str, list[str]] = field(default_factory=dict)

    def with_resolution(self, **kwargs: Any) -> "Settings":
        updates = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, resolution=replace(self.resolution, **updates))

    def with_output(self, **kwargs: Any) -> "Settings":
        updates = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, output=replace(self.output, **updates))


_RESOLUTION_KEYS = {f.name for f in fields(ResolutionConfig)}
_OUTPUT_KEYS = {f.name for f in fields(OutputOptions)}


def load_env_file(path: Path) -> None:
    """Load simple KEY=VALUE pairs from a .env file without overriding existing env."""
    if not path.exists() or not path.is_file():
        return

    for raw in path.read_text(errors="ignore").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if isinstance(value, list):
        return [str(x) for x in value]
    raise ValueError(f"'{key}' must be a list of patterns or a newline separated string")


def _validate_resolution(values: dict[str, Any]) -> dict[str, Any]:
    if "fetch_depth" in values:
        depth = values["fetch_depth"]
        if isinstance(depth, bool) or not isinstance(depth, int) or depth < 1:
            raise ValueError(f"fetch_depth must be a positive integer, got {depth!r}")
    for key in ("sha", "base_sha", "since", "until"):
        if key in values:
            values[key] = "" if values[key] is None else str(values[key])
    return values


def load_settings(path: str | Path | None) -> Settings:
    if not path:
        return Settings()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    unknown = set(data) - _RESOLUTION_KEYS - _OUTPUT_KEYS - {"files_yaml"}
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

    resolution = _validate_resolution({k: v for k, v in data.items() if k in _RESOLUTION_KEYS})

    output = dict(DEFAULT_OUTPUT)
    output.update({k: v for k, v in data.items() if k in _OUTPUT_KEYS})
    output["files"] = _as_list(data.get("files"), "files")
    output["files_ignore"] = _as_list(data.get("files_ignore"), "files_ignore")

    groups: dict[str, list[str]] = {}
    if data.get("files_yaml"):
        groups = load_file_groups(config_path.parent / str(data["files_yaml"]))

    return Settings(
        resolution=ResolutionConfig(**resolution),
        output=OutputOptions(**output),
        file_groups=groups,
    )


def load_file_groups(path: str | Path) -> dict[str, list[str]]:
    groups_path = Path(path)
    if not groups_path.exists():
        raise FileNotFoundError(f"File groups YAML not found: {path}")

    data = yaml.safe_load(groups_path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"File groups YAML must map group names to patterns: {path}")

    return {str(key): _as_list(value, str(key)) for key, value in data.items()}


def _env_bool(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


def _load_event_payload(environ: Mapping[str, str]) -> dict[str, Any]:
    event_path = environ.get("GITHUB_EVENT_PATH")
    if not event_path:
        return {}
    path = Path(event_path)
    if not path.is_file():
        return {}
    data = json.loads(path.read_text())
    return data if isinstance(data, dict) else {}


def load_trigger_context(environ: Mapping[str, str] | None = None) -> TriggerContext:
    """Build the trigger facts from GitHub Actions environment variables."""
    env = os.environ if environ is None else environ
    payload = _load_event_payload(env)
    pull_request = payload.get("pull_request") or {}
    base = pull_request.get("base") or {}
    head = pull_request.get("head") or {}
    ref = env.get("GITHUB_REF", "")

    if base.get("ref"):
        kind = EventKind.PULL_REQUEST
    elif ref.startswith("refs/tags/"):
        kind = EventKind.TAG
    else:
        kind = EventKind.PUSH

    forced = payload.get("forced")
    number = pull_request.get("number") or payload.get("number")
    repository = env.get("GITHUB_REPOSITORY", "")

    return TriggerContext(
        kind=kind,
        event_name=env.get("GITHUB_EVENT_NAME", ""),
        ref=ref,
        ref_name=env.get("GITHUB_REF_NAME", ""),
        base_ref=str(payload.get("base_ref") or "").replace("refs/heads/", ""),
        before_sha=str(payload.get("before") or ""),
        forced=forced if isinstance(forced, bool) else _env_bool(str(forced or "")),
        head_repo_fork=bool((head.get("repo") or {}).get("fork", False)),
        pull_request_number=int(number) if number else None,
        pull_request_base_ref=str(base.get("ref") or ""),
        pull_request_head_ref=str(head.get("ref") or ""),
        pull_request_base_sha=str(base.get("sha") or ""),
        pull_request_head_sha=str(head.get("sha") or ""),
        repository=repository,
        repository_owner=env.get("GITHUB_REPOSITORY_OWNER", repository.split("/")[0] if repository else ""),
    )
