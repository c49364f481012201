import json
from pathlib import Path

from changescope.config import Settings
from changescope.models import ChangeKind, ChangedFileSet, DiffRange, RenamePair, ScopeReport
from changescope.reporters import (
    build_markdown_report,
    build_outputs,
    write_github_output,
    write_json_report,
)


def _report() -> ScopeReport:
    changes = ChangedFileSet()
    changes.add(ChangeKind.ADDED, "src/new.py")
    changes.add(ChangeKind.MODIFIED, "docs/guide.md")
    changes.add(ChangeKind.RENAMED, "src/b.py")
    return ScopeReport(
        diff_range=DiffRange("p1", "p2", "...", current_branch="feature", target_branch="main"),
        changes=changes,
        renames=[RenamePair("src/a.py", "src/b.py")],
        submodules=["libs/sub"],
    )


def test_markdown_includes_range_and_buckets():
    out = build_markdown_report(_report())
    assert "`p1...p2`" in out
    assert "### Added (1)" in out
    assert "- `docs/guide.md`" in out
    assert "## Renames" in out
    assert "`libs/sub`" in out


def test_markdown_for_no_changes():
    out = build_markdown_report(ScopeReport(changes=ChangedFileSet(), source="api"))
    assert "No changes." in out
    assert "Range" not in out


def test_json_report_shape(tmp_path: Path):
    path = tmp_path / "report.json"
    write_json_report(_report(), path)
    data = json.loads(path.read_text())

    assert data["range"]["diff_operator"] == "..."
    assert data["changes"]["added"] == ["src/new.py"]
    assert data["renames"] == [{"old_path": "src/a.py", "new_path": "src/b.py"}]
    assert "version" in data


def test_outputs_per_file_group():
    settings = Settings(file_groups={"docs": ["docs/**"], "code": ["src/**"]})
    out = build_outputs(_report(), settings)

    assert out["docs_all_changed_files"] == "docs/guide.md"
    assert out["docs_only_changed"] == "false"
    assert out["code_all_changed_files"] == "src/new.py src/b.py"
    assert "all_changed_files" not in out


def test_outputs_include_renames_when_requested():
    settings = Settings().with_output(include_all_old_new_renamed_files=True)
    out = build_outputs(_report(), settings)

    assert out["all_old_new_renamed_files"] == "src/a.py,src/b.py"
    assert out["all_old_new_renamed_files_count"] == "1"


def test_github_output_format(tmp_path: Path):
    path = tmp_path / "out"
    path.write_text("existing=1\n")
    write_github_output({"any_changed": "true", "files": "a\nb"}, path)

    lines = path.read_text().splitlines()
    assert lines[0] == "existing=1"
    assert lines[1] == "any_changed=true"
    assert lines[2].startswith("files<<ghadelimiter_")
    assert lines[3:5] == ["a", "b"]
    assert lines[5] == lines[2].split("<<", 1)[1]
