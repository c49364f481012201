from pathlib import Path
from unittest.mock import patch

import pytest

from changescope.git_scope import GitGateway, VcsQueryError


class _Proc:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@patch("changescope.git_scope.subprocess.run")
def test_diff_status_parses_name_status(mock_run):
    mock_run.return_value = _Proc(stdout="M\ta.py\nR100\told.txt\tnew.txt\n\n")
    out = GitGateway(Path(".")).diff_status("a", "b", "...")

    assert out == [("M", "a.py"), ("R100", "old.txt", "new.txt")]
    assert mock_run.call_args[0][0][-1] == "a...b"


@patch("changescope.git_scope.subprocess.run")
def test_diff_status_failure_raises(mock_run):
    mock_run.return_value = _Proc(returncode=128, stderr="fatal: bad object")
    with pytest.raises(VcsQueryError):
        GitGateway(Path(".")).diff_status("a", "b")


@patch("changescope.git_scope.subprocess.run")
def test_can_diff_true_on_success(mock_run):
    mock_run.return_value = _Proc(returncode=0)
    assert GitGateway(Path(".")).can_diff("a", "b", "...") is True


@patch("changescope.git_scope.subprocess.run")
def test_can_diff_false_without_merge_base(mock_run):
    mock_run.return_value = _Proc(returncode=128, stderr="fatal: a...b: no merge base")
    assert GitGateway(Path(".")).can_diff("a", "b", "...") is False


@patch("changescope.git_scope.subprocess.run")
def test_can_diff_false_on_bad_revision(mock_run):
    mock_run.return_value = _Proc(returncode=128, stderr="fatal: bad revision 'a..b'")
    assert GitGateway(Path(".")).can_diff("a", "b", "..") is False


@patch("changescope.git_scope.subprocess.run")
def test_can_diff_other_failures_raise(mock_run):
    mock_run.return_value = _Proc(returncode=128, stderr="fatal: not a git repository")
    with pytest.raises(VcsQueryError):
        GitGateway(Path(".")).can_diff("a", "b", "..")


def test_git_missing():
    with patch("changescope.git_scope.subprocess.run", side_effect=FileNotFoundError()):
        with pytest.raises(VcsQueryError):
            GitGateway(Path(".")).head_sha()


@patch("changescope.git_scope.subprocess.run")
def test_verify(mock_run):
    mock_run.return_value = _Proc(returncode=0, stdout="abc\n")
    assert GitGateway(Path(".")).verify("abc") is True
    assert mock_run.call_args[0][0][-1] == "abc^{commit}"

    mock_run.return_value = _Proc(returncode=1)
    assert GitGateway(Path(".")).verify("abc") is False
    assert GitGateway(Path(".")).verify("") is False


@patch("changescope.git_scope.subprocess.run")
def test_parent_sha_none_for_root_commit(mock_run):
    mock_run.return_value = _Proc(returncode=1)
    assert GitGateway(Path(".")).parent_sha("HEAD") is None


@patch("changescope.git_scope.subprocess.run")
def test_fetch_returns_exit_code(mock_run):
    mock_run.return_value = _Proc(returncode=1, stderr="couldn't find remote ref")
    assert GitGateway(Path(".")).fetch(["origin", "pull/1/head:x"]) == 1


@patch("changescope.git_scope.subprocess.run")
def test_submodule_pointers(mock_run):
    mock_run.return_value = _Proc(
        stdout=(
            "diff --git a/libs/sub b/libs/sub\n"
            "index 1111111..2222222 160000\n"
            "--- a/libs/sub\n"
            "+++ b/libs/sub\n"
            "@@ -1 +1 @@\n"
            "-Subproject commit 1111111aaaa\n"
            "+Subproject commit 2222222bbbb\n"
        )
    )
    out = GitGateway(Path(".")).submodule_pointers("a", "b", "..", "libs/sub")
    assert out == ("1111111aaaa", "2222222bbbb")


@patch("changescope.git_scope.subprocess.run")
def test_submodule_pointers_for_added_submodule(mock_run):
    mock_run.return_value = _Proc(stdout="+Subproject commit 2222222bbbb\n")
    out = GitGateway(Path(".")).submodule_pointers("a", "b", "..", "libs/sub")
    assert out == (None, "2222222bbbb")


@patch("changescope.git_scope.subprocess.run")
def test_list_submodule_paths(mock_run):
    mock_run.return_value = _Proc(
        stdout=" 1234abcd libs/sub (heads/main)\n+5678abcd vendor/other (v1.0)\n"
    )
    assert GitGateway(Path(".")).list_submodule_paths() == ["libs/sub", "vendor/other"]


@patch("changescope.git_scope.subprocess.run")
def test_list_submodule_paths_with_spaces(mock_run):
    mock_run.return_value = _Proc(
        stdout=" 1234abcd third party/lib one (heads/main)\n-5678abcd not initialised\n"
    )
    assert GitGateway(Path(".")).list_submodule_paths() == [
        "third party/lib one",
        "not initialised",
    ]


@patch("changescope.git_scope.subprocess.run")
def test_is_shallow(mock_run):
    mock_run.return_value = _Proc(stdout="true\n")
    assert GitGateway(Path(".")).is_shallow() is True


@patch("changescope.git_scope.subprocess.run")
def test_extra_config_is_passed_per_call(mock_run):
    mock_run.return_value = _Proc(stdout="abc\n")
    GitGateway(Path("."), extra_config={"core.quotepath": "off"}).head_sha()
    assert mock_run.call_args[0][0][:3] == ["git", "-c", "core.quotepath=off"]


@patch("changescope.git_scope.subprocess.run")
def test_check_version(mock_run):
    mock_run.return_value = _Proc(stdout="git version 2.17.1\n")
    with pytest.raises(VcsQueryError):
        GitGateway(Path(".")).check_version()

    mock_run.return_value = _Proc(stdout="git version 2.43.0\n")
    GitGateway(Path(".")).check_version()


@patch("changescope.git_scope.subprocess.run")
def test_previous_tag(mock_run):
    mock_run.side_effect = [_Proc(stdout="v1.0.0\n"), _Proc(stdout="c0ffee\n")]
    assert GitGateway(Path(".")).previous_tag("abc") == ("v1.0.0", "c0ffee")


@patch("changescope.git_scope.subprocess.run")
def test_log_strips_quotes(mock_run):
    mock_run.return_value = _Proc(stdout='"abc123"\n')
    assert GitGateway(Path(".")).log(["--format=\"%H\"", "-n", "1"]) == "abc123"
