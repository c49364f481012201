from __future__ import annotations

import json
import uuid
from pathlib import Path

from changescope import __version__
from changescope.config import Settings
from changescope.models import ChangeKind, ScopeReport
from changescope.projection import filter_changes, summarize, summarize_renames


def build_outputs(report: ScopeReport, settings: Settings) -> dict[str, str]:
    """Output key/values for the whole change set, each file group and renames."""
    opts = settings.output
    common = dict(
        separator=opts.separator,
        dir_names=opts.dir_names,
        max_depth=opts.dir_names_max_depth,
        exclude_current_dir=opts.dir_names_exclude_current_dir,
        as_json=opts.json,
        escape_json=opts.escape_json,
    )

    outputs: dict[str, str] = {}
    if settings.file_groups:
        for name, patterns in settings.file_groups.items():
            selected = filter_changes(report.changes, patterns, opts.files_ignore, opts.match_directories)
            outputs.update(summarize(selected, prefix=name, universe=report.changes, **common))
    else:
        selected = report.changes
        if opts.files or opts.files_ignore:
            selected = filter_changes(report.changes, opts.files, opts.files_ignore, opts.match_directories)
        outputs.update(summarize(selected, universe=report.changes, **common))

    if opts.include_all_old_new_renamed_files:
        outputs.update(
            summarize_renames(
                report.renames,
                files_separator=opts.old_new_files_separator,
                as_json=opts.json,
                escape_json=opts.escape_json,
            )
        )
    return outputs


def write_json_report(report: ScopeReport, path: Path) -> None:
    payload = report.to_dict()
    payload["version"] = __version__
    path.write_text(json.dumps(payload, indent=2))


def build_markdown_report(report: ScopeReport) -> str:
    rng = report.diff_range
    changes = report.changes
    lines = [
        "# changescope report",
        "",
        f"- **Source:** `{report.source}`",
    ]
    if rng is not None:
        lines.extend(
            [
                f"- **Range:** `{rng.spec}`",
                f"- **Target Branch:** `{rng.target_branch or 'n/a'}`",
                f"- **Current Branch:** `{rng.current_branch or 'n/a'}`",
                f"- **Initial Commit:** {'yes' if rng.is_initial_commit else 'no'}",
            ]
        )
    if report.submodules:
        lines.append(f"- **Submodules:** {', '.join(f'`{s}`' for s in report.submodules)}")
    lines.append(f"- **Changed Files:** {len(changes.all_paths())}")
    lines.append("")

    lines.extend(["## Changes", ""])
    if changes.is_empty():
        lines.append("No changes.")
    else:
        for kind in ChangeKind:
            paths = changes[kind]
            if not paths:
                continue
            lines.extend([f"### {kind.name.replace('_', ' ').title()} ({len(paths)})", ""])
            lines.extend(f"- `{p}`" for p in paths)
            lines.append("")

    if report.renames:
        lines.extend(["## Renames", ""])
        lines.extend(f"- `{r.old_path}` → `{r.new_path}`" for r in report.renames)
        lines.append("")

    return "\n".join(lines)


def write_markdown_report(report: ScopeReport, path: Path) -> None:
    path.write_text(build_markdown_report(report))


def write_github_output(outputs: dict[str, str], path: Path) -> None:
    """Append outputs in the GITHUB_OUTPUT file format."""
    with path.open("a", encoding="utf-8") as fh:
        for key, value in outputs.items():
            if "\n" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4()}"
                fh.write(f"{key}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                fh.write(f"{key}={value}\n")
