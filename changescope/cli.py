from __future__ import annotations

from dataclasses import replace
from pathlib import Path
import logging
import os

import typer

from changescope.config import load_env_file, load_file_groups, load_settings, load_trigger_context
from changescope.git_scope import GitScopeError
from changescope.reporters import build_outputs, write_github_output, write_json_report, write_markdown_report
from changescope.resolver import ConfigurationError
from changescope.runner import collect_changes

app = typer.Typer(help="changescope: resolve the CI commit range and classify changed files")


@app.callback()
def main() -> None:
    """changescope command group."""


def _configure_logging(verbose: bool) -> None:
    debug = verbose or os.getenv("RUNNER_DEBUG") == "1"
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("changed-files")
def changed_files(
    path: str = typer.Option(".", help="Path to the repository working copy"),
    config: str | None = typer.Option(None, help="Settings YAML path"),
    files_yaml: str | None = typer.Option(None, help="YAML mapping of group name to file patterns"),
    sha: str | None = typer.Option(None, help="Current commit, used together with --base-sha"),
    base_sha: str | None = typer.Option(None, help="Commit to compare against"),
    since: str | None = typer.Option(None, help="Compare against the last commit at or before this date"),
    until: str | None = typer.Option(None, help="Use the last commit at or before this date as current"),
    fetch_depth: int | None = typer.Option(None, min=1, help="History depth fetched per deepening step"),
    since_last_remote_commit: bool | None = typer.Option(
        None, "--since-last-remote-commit/--since-previous-commit", help="Compare against the last pushed commit"
    ),
    token: str | None = typer.Option(None, envvar="GITHUB_TOKEN", help="Token for the GitHub API fallback"),
    json_out: str | None = typer.Option(None, help="JSON report output path"),
    md_out: str | None = typer.Option(None, help="Markdown report output path"),
    github_output: str | None = typer.Option(None, envvar="GITHUB_OUTPUT", help="GitHub Actions output file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    _configure_logging(verbose)

    load_env_file(Path.cwd() / ".env")

    workspace = Path(os.getenv("GITHUB_WORKSPACE") or Path.cwd())
    root = (workspace / path).resolve()
    if not root.exists():
        typer.secho(f"Path does not exist: {root}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    try:
        settings = load_settings(config)
        if files_yaml:
            settings = replace(settings, file_groups=load_file_groups(files_yaml))
    except (OSError, ValueError) as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    settings = settings.with_resolution(
        sha=sha,
        base_sha=base_sha,
        since=since,
        until=until,
        fetch_depth=fetch_depth,
        since_last_remote_commit=since_last_remote_commit,
    ).with_output(token=token)

    try:
        trigger = load_trigger_context()
    except (OSError, ValueError) as exc:
        typer.secho(f"Unable to read the event payload: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    try:
        report = collect_changes(trigger, settings, root)
    except ConfigurationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=2)
    except GitScopeError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if report.is_initial_commit:
        typer.secho("Initial commit: nothing to report", fg=typer.colors.YELLOW)
        return

    outputs = build_outputs(report, settings)
    if json_out:
        write_json_report(report, Path(json_out))
    if md_out:
        write_markdown_report(report, Path(md_out))
    if github_output:
        write_github_output(outputs, Path(github_output))

    rng = report.diff_range
    typer.echo(
        f"Changes source={report.source} range={rng.spec if rng else 'n/a'} "
        f"files={len(report.changes.all_paths())} renames={len(report.renames)} "
        f"submodules={len(report.submodules)}"
    )
    if not github_output:
        for key, value in outputs.items():
            typer.echo(f"{key}={value}")


if __name__ == "__main__":
    app()
