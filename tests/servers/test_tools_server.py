import json
import os
from pathlib import Path

import pytest
from inline_snapshot import snapshot

from reposage.clients.errors.base import InvalidRepoUrlError
from reposage.servers.models.tools import CodeIssue
from reposage.servers.tools import ToolServer, lint_issues
from reposage.state import AgentState
from reposage.workspace.dependencies import NO_MANIFEST_SUMMARY
from reposage.workspace.runner import LocalToolRunner
from tests.conftest import TEST_REPO_URL, make_upstream_repository, requires_git

LINT_OUTPUT = """\
src/app.js:3:1 error Unexpected var, use let or const instead
src/app.js:9:5 error 'x' is defined but never used
lib/util.js:1:1 error Missing semicolon
✖ 3 problems (3 errors, 0 warnings)
"""


@pytest.fixture
def tool_server(tool_runner: LocalToolRunner) -> ToolServer:
    return ToolServer(tool_runner=tool_runner)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch):
    for env_var in ("TEST_COMMAND", "LINT_COMMAND", "REMOTE_EXECUTION_ENABLED", "NOSANA_ENABLED"):
        monkeypatch.delenv(env_var, raising=False)


def test_init():
    tool_server = ToolServer()
    assert tool_server is not None


def test_lint_issues():
    assert lint_issues(LINT_OUTPUT, limit=2) == snapshot(
        [
            CodeIssue(
                type="lint_error",
                severity="medium",
                file="src/app.js",
                line=3,
                message="src/app.js:3:1 error Unexpected var, use let or const instead",
                suggestion="Fix linting errors according to the project's lint configuration",
            ),
            CodeIssue(
                type="lint_error",
                severity="medium",
                file="src/app.js",
                line=9,
                message="src/app.js:9:5 error 'x' is defined but never used",
                suggestion="Fix linting errors according to the project's lint configuration",
            ),
        ]
    )


async def test_invalid_url_clones_nothing(tool_server: ToolServer, workspace_root: Path):
    with pytest.raises(InvalidRepoUrlError):
        _ = await tool_server.run_tests(repo_url="not a repository")

    assert list(workspace_root.iterdir()) == []


@requires_git
class TestRunTests:
    async def test_passing(self, tool_server: ToolServer, upstream_root: Path, workspace_root: Path):
        _ = make_upstream_repository(upstream_root, files={"results.txt": "Tests: 4 passed, 4 total\n"})

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="cat results.txt", remote=False)

        assert result.model_dump(exclude={"state"}) == snapshot(
            {
                "passed": True,
                "status": "passed",
                "total_tests": 4,
                "failed_tests": 0,
                "output": "Tests: 4 passed, 4 total\n",
                "command": "cat results.txt",
                "remote": False,
                "timed_out": False,
            }
        )
        assert list(workspace_root.iterdir()) == []

    async def test_failing(self, tool_server: ToolServer, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"results.txt": "Tests: 1 failed, 3 passed, 4 total\n"})

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="cat results.txt; exit 1", remote=False)

        assert result.passed is False
        assert result.status == "failed"
        assert result.failed_tests == 1
        assert result.total_tests == 4

    async def test_unrecognized_output_is_not_a_pass(self, tool_server: ToolServer, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="echo all good", remote=False)

        assert result.passed is False
        assert result.status == "undetermined"

    async def test_nonzero_exit_without_counts_is_a_failure(self, tool_server: ToolServer, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="echo boom; exit 2", remote=False)

        assert result.status == "failed"

    async def test_no_detectable_command(self, tool_server: ToolServer, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, remote=False)

        assert result.status == "undetermined"
        assert result.command is None

    async def test_command_from_environment(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"results.txt": "2 passed\n"})
        monkeypatch.setenv("TEST_COMMAND", "cat results.txt")

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, remote=False)

        assert result.passed is True
        assert result.command == "cat results.txt"

    async def test_records_state(self, tool_server: ToolServer, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"results.txt": "Tests: 1 failed, 1 total\n"})

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="cat results.txt", remote=False, state=AgentState())

        assert result.state is not None
        assert result.state.status_of(TEST_REPO_URL) == "issues_detected"

    async def test_clone_failure(self, tool_server: ToolServer, workspace_root: Path):
        result = await tool_server.run_tests(repo_url="https://github.com/octo/missing", test_command="true", remote=False)

        assert result.passed is False
        assert result.status == "failed"
        assert list(workspace_root.iterdir()) == []

    async def test_output_is_clipped(self, tool_server: ToolServer, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"results.txt": "x" * 5000 + "\n1 passed\n"})

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="cat results.txt", remote=False)

        assert len(result.output) == 1000


@requires_git
class TestCheckDependencies:
    async def test_no_manifest(self, tool_server: ToolServer, upstream_root: Path):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})

        report = await tool_server.check_dependencies(repo_url=TEST_REPO_URL)

        assert report.model_dump() == {"outdated": [], "vulnerabilities": [], "summary": NO_MANIFEST_SUMMARY}

    async def test_report(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(
            upstream_root,
            files={
                "package.json": "{}",
                "outdated.json": json.dumps({"lodash": {"current": "4.17.20", "latest": "4.17.21", "type": "dependencies"}}),
                "audit.json": json.dumps({"vulnerabilities": {"minimist": {"severity": "high", "title": "Prototype Pollution"}}}),
            },
        )
        monkeypatch.setattr("reposage.servers.tools.OUTDATED_COMMAND", "cat outdated.json; exit 1")
        monkeypatch.setattr("reposage.servers.tools.AUDIT_COMMAND", "cat audit.json; exit 1")

        report = await tool_server.check_dependencies(repo_url=TEST_REPO_URL)

        assert report.model_dump() == snapshot(
            {
                "outdated": [{"name": "lodash", "current": "4.17.20", "latest": "4.17.21", "type": "dependencies"}],
                "vulnerabilities": [{"name": "minimist", "severity": "high", "description": "Prototype Pollution"}],
                "summary": "Found 1 outdated packages and 1 vulnerabilities",
            }
        )


@requires_git
class TestFormatAndLint:
    async def test_format_code(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"a.js": "var a=1\n", "b.js": "var b = 2;\n"})
        monkeypatch.setattr("reposage.servers.tools.FORMAT_COMMAND", "printf 'var a = 1;\\n' > a.js")

        result = await tool_server.format_code(repo_url=TEST_REPO_URL)

        assert result.model_dump() == {"success": True, "files_formatted": 1, "changes": ["a.js"]}

    async def test_format_code_no_changes(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"a.js": "var a = 1;\n"})
        monkeypatch.setattr("reposage.servers.tools.FORMAT_COMMAND", "true")

        result = await tool_server.format_code(repo_url=TEST_REPO_URL)

        assert result.model_dump() == {"success": True, "files_formatted": 0, "changes": ["No files needed formatting"]}

    async def test_format_code_failure(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"a.js": "var a = 1;\n"})
        monkeypatch.setattr("reposage.servers.tools.FORMAT_COMMAND", "exit 2")

        result = await tool_server.format_code(repo_url=TEST_REPO_URL)

        assert result.model_dump() == {"success": False, "files_formatted": 0, "changes": ["Failed to format code"]}

    async def test_fix_lint_errors(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"lint.txt": LINT_OUTPUT})
        monkeypatch.setenv("LINT_COMMAND", "cat lint.txt")
        monkeypatch.setattr("reposage.servers.tools.LINT_FIX_COMMAND", "grep -v Unexpected lint.txt > fixed.txt; mv fixed.txt lint.txt")

        result = await tool_server.fix_lint_errors(repo_url=TEST_REPO_URL, state=AgentState())

        assert result.success is True
        assert result.errors_fixed == 1
        assert result.remaining_errors == 3
        assert result.state is not None
        assert result.state.total_issues_fixed == 1

    async def test_fix_lint_errors_failure(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"lint.txt": LINT_OUTPUT})
        monkeypatch.setenv("LINT_COMMAND", "cat lint.txt")
        monkeypatch.setattr("reposage.servers.tools.LINT_FIX_COMMAND", "exit 1")

        result = await tool_server.fix_lint_errors(repo_url=TEST_REPO_URL)

        assert result.success is False
        assert result.message == "Failed to fix lint errors"

    async def test_analyze_code_quality(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"lint.txt": LINT_OUTPUT})
        monkeypatch.setenv("LINT_COMMAND", "cat lint.txt")

        report = await tool_server.analyze_code_quality(repo_url=TEST_REPO_URL)

        assert report.score == 80
        assert len(report.issues) == 4
        assert report.suggestions == snapshot(
            [
                "Run fix_lint_errors to apply the linter's automatic fixes",
                "Address the 2 lint error(s) in src/app.js",
                "Address the 1 lint error(s) in lib/util.js",
            ]
        )

    async def test_analyze_code_quality_without_linter(self, tool_server: ToolServer, upstream_root: Path, monkeypatch: pytest.MonkeyPatch):
        _ = make_upstream_repository(upstream_root, files={"README.md": "# Widgets\n"})
        monkeypatch.setenv("LINT_COMMAND", "echo 'No linter found'")

        report = await tool_server.analyze_code_quality(repo_url=TEST_REPO_URL)

        assert report.score == 100
        assert report.issues == []
        assert report.suggestions == ["Add a linter (for example ESLint) and a `lint` script so problems can be detected automatically"]


class TestRemoteRunTests:
    @pytest.fixture
    def job_arguments(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
        """Put a stand-in `nosana` CLI on the PATH that records its arguments and prints a test summary."""

        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        job_arguments = tmp_path / "job-arguments.txt"

        nosana = bin_dir / "nosana"
        _ = nosana.write_text(f"#!/bin/sh\nprintf '%s\\n' \"$@\" > '{job_arguments}'\necho 'Tests: 1 failed, 3 passed, 4 total'\nexit 1\n")
        nosana.chmod(0o755)

        monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
        monkeypatch.setenv("REMOTE_EXECUTION_MARKET", "gpu-test")

        return job_arguments

    async def test_remote_run(self, tool_server: ToolServer, job_arguments: Path, workspace_root: Path):
        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="npm test", remote=True)

        assert result.model_dump(exclude={"state", "output"}) == snapshot(
            {
                "passed": False,
                "status": "failed",
                "total_tests": 4,
                "failed_tests": 1,
                "command": "npm test",
                "remote": True,
                "timed_out": False,
            }
        )
        assert list(workspace_root.iterdir()) == []

        arguments = job_arguments.read_text().splitlines()
        assert arguments[:3] == ["job", "post", "bash"]
        assert arguments[-3:] == ["--wait", "--market", "gpu-test"]
        assert "git clone" in arguments[4]
        assert arguments[4].endswith("&& cd repo && npm test")

    async def test_remote_run_from_environment(
        self, tool_server: ToolServer, job_arguments: Path, workspace_root: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("NOSANA_ENABLED", "true")

        result = await tool_server.run_tests(repo_url=TEST_REPO_URL, test_command="npm test")

        assert result.remote is True
        assert result.status == "failed"
        assert list(workspace_root.iterdir()) == []
