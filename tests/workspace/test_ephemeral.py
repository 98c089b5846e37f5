from pathlib import Path

import pytest

from reposage.clients.coordinates import parse_repo_url
from reposage.clients.errors.base import InvalidRepoUrlError
from reposage.clients.errors.workspace import WorkspaceAcquisitionFailedError, WorkspaceReleasedError
from reposage.workspace.ephemeral import EphemeralWorkspace, rmtree_force
from reposage.workspace.runner import LocalToolRunner, clone_url_for, detect_test_command, remote_job_command
from tests.conftest import TEST_REPO_URL, make_upstream_repository, requires_git


@requires_git
class TestEphemeralWorkspace:
    async def test_clone_and_release(self, tool_runner: LocalToolRunner, upstream_root: Path, workspace_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        async with tool_runner.workspace(repo_url=TEST_REPO_URL, branch="main", purpose="test") as workspace:
            path = workspace.path

            assert path.parent == workspace_root
            assert path.name.startswith("reposage-test-")
            assert (path / "README.md").read_text() == "# Widgets\n"
            assert workspace.repo.head.commit.message == "Initial commit"

        assert not path.exists()
        assert workspace.released

        with pytest.raises(WorkspaceReleasedError):
            _ = workspace.path

    async def test_removed_after_exception(self, tool_runner: LocalToolRunner, upstream_root: Path, workspace_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        workspace = tool_runner.workspace(repo_url=TEST_REPO_URL)
        path: Path | None = None

        with pytest.raises(RuntimeError, match="tool crashed"):
            async with workspace:
                path = workspace.path
                msg = "tool crashed"
                raise RuntimeError(msg)

        assert path is not None
        assert not path.exists()
        assert list(workspace_root.iterdir()) == []

    async def test_release_is_idempotent(self, tool_runner: LocalToolRunner, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        workspace = tool_runner.workspace(repo_url=TEST_REPO_URL)
        path = await workspace.acquire()

        await workspace.release()
        await workspace.release()

        assert not path.exists()

    async def test_clone_failure(self, tool_runner: LocalToolRunner, workspace_root: Path):
        workspace = tool_runner.workspace(repo_url="https://github.com/octo/missing")

        with pytest.raises(WorkspaceAcquisitionFailedError):
            _ = await workspace.acquire()

        assert workspace.released
        assert list(workspace_root.iterdir()) == []

    async def test_missing_branch(self, tool_runner: LocalToolRunner, upstream_root: Path, workspace_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        with pytest.raises(WorkspaceAcquisitionFailedError):
            async with tool_runner.workspace(repo_url=TEST_REPO_URL, branch="does-not-exist"):
                pass

        assert list(workspace_root.iterdir()) == []

    async def test_run_in_clone(self, tool_runner: LocalToolRunner, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"VERSION": "1.2.3"})

        result = await tool_runner.run_in_clone(repo_url=TEST_REPO_URL, command="cat VERSION", timeout=10)

        assert result.stdout == "1.2.3"


def test_invalid_url_creates_nothing(tool_runner: LocalToolRunner, workspace_root: Path):
    with pytest.raises(InvalidRepoUrlError):
        _ = tool_runner.workspace(repo_url="not-a-repo")

    assert list(workspace_root.iterdir()) == []


def test_unacquired_workspace_has_no_path():
    workspace = EphemeralWorkspace(clone_url="https://github.com/octo/widgets.git")

    with pytest.raises(WorkspaceReleasedError):
        _ = workspace.path


def test_rmtree_force_read_only(tmp_path: Path):
    directory = tmp_path / "pack"
    directory.mkdir()
    read_only = directory / "objects.pack"
    _ = read_only.write_text("data")
    read_only.chmod(0o444)

    rmtree_force(directory)

    assert not directory.exists()


def test_rmtree_force_missing(tmp_path: Path):
    rmtree_force(tmp_path / "missing")


def test_clone_url_for(tool_runner: LocalToolRunner, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("CLONE_BASE_URL", raising=False)

    assert tool_runner.clone_url(TEST_REPO_URL) == f"{upstream_root.as_uri()}/octo/widgets.git"
    assert clone_url_for(parse_repo_url("https://github.com/octo/widgets.git")) == "https://github.com/octo/widgets.git"
    assert clone_url_for(parse_repo_url(TEST_REPO_URL), clone_base_url="https://mirror.example.com/") == (
        "https://mirror.example.com/octo/widgets.git"
    )


@pytest.mark.parametrize(
    ("marker", "expected"),
    [
        ("package.json", "npm test || pnpm test || yarn test"),
        ("pyproject.toml", "python -m pytest"),
        ("go.mod", "go test ./..."),
        ("Cargo.toml", "cargo test"),
    ],
)
def test_detect_test_command(tmp_path: Path, marker: str, expected: str):
    _ = (tmp_path / marker).write_text("")

    assert detect_test_command(tmp_path) == expected


def test_detect_test_command_none(tmp_path: Path):
    assert detect_test_command(tmp_path) is None


def test_remote_job_command():
    command = remote_job_command(clone_url="https://github.com/octo/widgets.git", command="npm test", market="nvidia-3060")

    assert command == (
        "nosana job post bash -lc 'git clone https://github.com/octo/widgets.git repo && cd repo && npm test' --wait --market nvidia-3060"
    )
