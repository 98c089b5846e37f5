import asyncio
from collections import Counter
from logging import Logger
from typing import Any

from fastmcp import FastMCP
from fastmcp.tools.tool import Tool
from fastmcp.utilities.logging import get_logger

from reposage.clients.errors.workspace import ToolExecutionFailedError, ToolExecutionTimeoutError, WorkspaceAcquisitionFailedError
from reposage.config import get_lint_command, get_remote_execution_market, get_test_command, remote_execution_enabled
from reposage.servers.models.tools import CodeIssue, CodeQualityReport, DependencyReport, FormatResult, LintFixResult, RunTestsResult
from reposage.servers.shared.annotations import BRANCH, REMOTE, REPO_URL, TEST_COMMAND
from reposage.state import AgentState
from reposage.workspace.classify import Outcome, OutcomeStatus, classify, find_lint_errors, parse_lint_location
from reposage.workspace.dependencies import NO_MANIFEST_SUMMARY, parse_audit, parse_outdated, summarize
from reposage.workspace.ephemeral import EphemeralWorkspace
from reposage.workspace.runner import (
    AUDIT_COMMAND,
    DEFAULT_LINT_COMMAND,
    DEPENDENCY_TIMEOUT_SECONDS,
    FORMAT_COMMAND,
    FORMAT_TIMEOUT_SECONDS,
    LINT_FIX_COMMAND,
    LINT_TIMEOUT_SECONDS,
    NODE_TEST_COMMAND,
    OUTDATED_COMMAND,
    TEST_TIMEOUT_SECONDS,
    LocalToolRunner,
    detect_test_command,
)
from reposage.workspace.shell import ToolInvocationResult

TEST_OUTPUT_LENGTH = 1000
REMOTE_TIMEOUT_SECONDS = 1800.0

NO_LINTER_MARKER = "No linter found"

LINT_ISSUE_PENALTY = 5
MAX_REPORTED_FILES = 3


def lint_issues(output: str, limit: int | None = None) -> list[CodeIssue]:
    issues: list[CodeIssue] = []

    for line in find_lint_errors(output, limit=limit):
        file, line_number = parse_lint_location(line)
        issues.append(
            CodeIssue(
                type="lint_error",
                severity="medium",
                file=file,
                line=line_number,
                message=line,
                suggestion="Fix linting errors according to the project's lint configuration",
            )
        )

    return issues


class ToolServer:
    """Runs a repository's own tooling (tests, linters, formatters, package audits) in a throwaway clone."""

    def __init__(self, tool_runner: LocalToolRunner | None = None, logger: Logger | None = None):
        self.tool_runner: LocalToolRunner = tool_runner or LocalToolRunner()
        self.logger: Logger = logger or get_logger(__name__)

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.run_tests))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.check_dependencies))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.format_code))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.fix_lint_errors))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.analyze_code_quality))

        return fastmcp

    async def run_tests(
        self,
        repo_url: REPO_URL,
        test_command: TEST_COMMAND = None,
        branch: BRANCH = None,
        remote: REMOTE = None,
        state: AgentState | None = None,
    ) -> RunTestsResult:
        """Run the repository's test suite and report whether it passed."""

        workspace: EphemeralWorkspace = self.tool_runner.workspace(repo_url=repo_url, branch=branch, purpose="test")

        run_remotely: bool = remote_execution_enabled() if remote is None else remote

        command: str | None = test_command or get_test_command()

        try:
            if run_remotely:
                command = command or NODE_TEST_COMMAND
                result: ToolInvocationResult = await self.tool_runner.run_remote(
                    repo_url=repo_url, command=command, market=get_remote_execution_market(), timeout=REMOTE_TIMEOUT_SECONDS
                )
            else:
                async with workspace:
                    command = command or detect_test_command(workspace.path)

                    if command is None:
                        return self._test_result(
                            repo_url=repo_url,
                            state=state,
                            status="undetermined",
                            output="No test command was provided and none could be detected.",
                        )

                    result = await self.tool_runner.run(path=workspace.path, command=command, timeout=TEST_TIMEOUT_SECONDS)
        except WorkspaceAcquisitionFailedError as e:
            return self._test_result(repo_url=repo_url, state=state, status="failed", output=str(e), command=command)

        outcome: Outcome = classify(result.output)

        status: OutcomeStatus = outcome.status
        if status == "undetermined" and result.exit_status not in (0, None):
            status = "failed"
        if result.timed_out and status == "passed":
            status = "undetermined"

        self.logger.info(f"Tests for {repo_url} finished: {status} ({outcome.failed_count} failed of {outcome.total_count})")

        return self._test_result(
            repo_url=repo_url,
            state=state,
            status=status,
            total_tests=outcome.total_count,
            failed_tests=outcome.failed_count,
            output=result.output,
            command=command,
            remote=run_remotely,
            timed_out=result.timed_out,
        )

    def _test_result(self, repo_url: str, state: AgentState | None, status: OutcomeStatus, output: str, **kwargs: Any) -> RunTestsResult:
        passed: bool = status == "passed"

        if state is not None:
            state = state.record_check(repo_url=repo_url, status="healthy" if passed else "issues_detected")

        return RunTestsResult(passed=passed, status=status, output=output[:TEST_OUTPUT_LENGTH], state=state, **kwargs)  # pyright: ignore[reportAny]

    async def check_dependencies(self, repo_url: REPO_URL, branch: BRANCH = None) -> DependencyReport:
        """Check an npm project for outdated packages and known vulnerabilities."""

        workspace: EphemeralWorkspace = self.tool_runner.workspace(repo_url=repo_url, branch=branch, purpose="deps")

        try:
            async with workspace:
                if not (workspace.path / "package.json").exists():
                    return DependencyReport(summary=NO_MANIFEST_SUMMARY)

                outdated_result: ToolInvocationResult = await self.tool_runner.run(
                    path=workspace.path, command=OUTDATED_COMMAND, timeout=DEPENDENCY_TIMEOUT_SECONDS
                )
                audit_result: ToolInvocationResult = await self.tool_runner.run(
                    path=workspace.path, command=AUDIT_COMMAND, timeout=DEPENDENCY_TIMEOUT_SECONDS
                )
        except WorkspaceAcquisitionFailedError as e:
            self.logger.warning(f"Could not check dependencies for {repo_url}: {e}")
            return DependencyReport(summary=NO_MANIFEST_SUMMARY)

        outdated = parse_outdated(outdated_result.stdout)
        vulnerabilities = parse_audit(audit_result.stdout)

        return DependencyReport(outdated=outdated, vulnerabilities=vulnerabilities, summary=summarize(outdated, vulnerabilities))

    async def format_code(self, repo_url: REPO_URL, branch: BRANCH = None) -> FormatResult:
        """Run Prettier over the repository and report which files it would change."""

        workspace: EphemeralWorkspace = self.tool_runner.workspace(repo_url=repo_url, branch=branch, purpose="format")

        try:
            async with workspace:
                _ = await self.tool_runner.run(path=workspace.path, command=FORMAT_COMMAND, timeout=FORMAT_TIMEOUT_SECONDS, check=True)

                changed_files: list[str] = await asyncio.to_thread(self._changed_files, workspace)
        except (WorkspaceAcquisitionFailedError, ToolExecutionFailedError, ToolExecutionTimeoutError) as e:
            self.logger.warning(f"Could not format {repo_url}: {e}")
            return FormatResult(success=False, changes=["Failed to format code"])

        return FormatResult(success=True, files_formatted=len(changed_files), changes=changed_files or ["No files needed formatting"])

    def _changed_files(self, workspace: EphemeralWorkspace) -> list[str]:
        return sorted({diff.a_path or diff.b_path or "" for diff in workspace.repo.index.diff(None)} - {""})

    async def fix_lint_errors(self, repo_url: REPO_URL, branch: BRANCH = None, state: AgentState | None = None) -> LintFixResult:
        """Apply the linter's automatic fixes and report how many errors they resolved."""

        workspace: EphemeralWorkspace = self.tool_runner.workspace(repo_url=repo_url, branch=branch, purpose="lint-fix")

        lint_command: str = get_lint_command() or DEFAULT_LINT_COMMAND

        try:
            async with workspace:
                before: ToolInvocationResult = await self.tool_runner.run(
                    path=workspace.path, command=lint_command, timeout=LINT_TIMEOUT_SECONDS
                )

                _ = await self.tool_runner.run(path=workspace.path, command=LINT_FIX_COMMAND, timeout=LINT_TIMEOUT_SECONDS, check=True)

                after: ToolInvocationResult = await self.tool_runner.run(
                    path=workspace.path, command=lint_command, timeout=LINT_TIMEOUT_SECONDS
                )
        except (WorkspaceAcquisitionFailedError, ToolExecutionFailedError, ToolExecutionTimeoutError) as e:
            self.logger.warning(f"Could not fix lint errors for {repo_url}: {e}")
            return LintFixResult(success=False, message="Failed to fix lint errors", state=state)

        errors_before: int = len(find_lint_errors(before.output))
        remaining_errors: int = len(find_lint_errors(after.output))
        errors_fixed: int = max(errors_before - remaining_errors, 0)

        if state is not None:
            state = state.record_issues_fixed(errors_fixed)

        return LintFixResult(
            success=True,
            errors_fixed=errors_fixed,
            remaining_errors=remaining_errors,
            message=f"Fixed {errors_fixed} lint error(s), {remaining_errors} remaining",
            state=state,
        )

    async def analyze_code_quality(self, repo_url: REPO_URL, branch: BRANCH = None) -> CodeQualityReport:
        """Lint the repository and score its code quality from 0 to 100."""

        workspace: EphemeralWorkspace = self.tool_runner.workspace(repo_url=repo_url, branch=branch, purpose="quality")

        lint_command: str = get_lint_command() or DEFAULT_LINT_COMMAND

        try:
            async with workspace:
                result: ToolInvocationResult = await self.tool_runner.run(
                    path=workspace.path, command=lint_command, timeout=LINT_TIMEOUT_SECONDS
                )
        except WorkspaceAcquisitionFailedError as e:
            return CodeQualityReport(
                score=0,
                issues=[CodeIssue(type="build_error", severity="critical", message=str(e), suggestion="Check repository URL and access")],
            )

        if result.timed_out:
            return CodeQualityReport(
                score=0,
                issues=[CodeIssue(type="build_error", severity="high", message=f"Linting timed out after {LINT_TIMEOUT_SECONDS}s")],
                suggestions=["Run the linter locally to investigate why it does not finish"],
            )

        issues: list[CodeIssue] = lint_issues(result.output)

        return CodeQualityReport(
            score=max(0, 100 - LINT_ISSUE_PENALTY * len(issues)),
            issues=issues,
            suggestions=self._quality_suggestions(output=result.output, issues=issues),
        )

    def _quality_suggestions(self, output: str, issues: list[CodeIssue]) -> list[str]:
        if NO_LINTER_MARKER in output:
            return ["Add a linter (for example ESLint) and a `lint` script so problems can be detected automatically"]

        if not issues:
            return []

        suggestions: list[str] = ["Run fix_lint_errors to apply the linter's automatic fixes"]

        file_counts: Counter[str] = Counter(issue.file for issue in issues if issue.file)
        suggestions.extend(f"Address the {count} lint error(s) in {file}" for file, count in file_counts.most_common(MAX_REPORTED_FILES))

        return suggestions
