from logging import Logger
from typing import Annotated, Any

from fastmcp import FastMCP
from fastmcp.tools.tool import Tool
from fastmcp.utilities.logging import get_logger
from git.exc import GitError
from pydantic import Field

from reposage.clients.coordinates import RepoCoordinates, parse_repo_url
from reposage.clients.errors.base import ClientError
from reposage.clients.github import GitHubRepoClient
from reposage.clients.models.github import CodeSearchResult, DirectoryEntry, IssueSearchResult, Repository, RepositoryFile
from reposage.config import get_lint_command
from reposage.servers.models.repository import FoundFile, FoundFiles, IssueSearchResults, IssueSummary, RepositoryAnalysis
from reposage.servers.models.tools import CodeIssue
from reposage.servers.shared.annotations import BRANCH, DIRECTORY, PATH, QUERY, REPO_URL
from reposage.servers.tools import lint_issues
from reposage.state import AgentState, utc_now
from reposage.workspace.runner import DEFAULT_LINT_COMMAND, LINT_TIMEOUT_SECONDS, LocalToolRunner

LANGUAGE = Annotated[str | None, Field(description="Restrict the search to issues in repositories of this language.")]

ISSUE_SEARCH_LIMIT = 5
ANALYSIS_LINT_ISSUES_LIMIT = 5
ANALYSIS_WORKFLOW_RUNS = 5
SHORT_SHA_LENGTH = 7


class RepositoryServer:
    """Reads repository content and reports on repository health."""

    def __init__(self, github_client: GitHubRepoClient, tool_runner: LocalToolRunner | None = None, logger: Logger | None = None):
        self.github_client: GitHubRepoClient = github_client
        self.tool_runner: LocalToolRunner = tool_runner or LocalToolRunner()
        self.logger: Logger = logger or get_logger(__name__)

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.read_file))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.list_repo_files))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.find_file))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.search_github_issues))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.analyze_repository))

        return fastmcp

    async def read_file(self, repo_url: REPO_URL, path: PATH, branch: BRANCH = None) -> RepositoryFile:
        """Read a file from a repository. If no branch is given, the default branch is used, then `main`, then `master`."""

        return await self.github_client.read_file(repo_url=repo_url, path=path, branch=branch)

    async def list_repo_files(self, repo_url: REPO_URL, path: DIRECTORY = "", branch: BRANCH = None) -> list[DirectoryEntry]:
        """List the files and directories at a path in a repository."""

        return await self.github_client.list_directory(repo_url=repo_url, path=path, branch=branch)

    async def find_file(self, repo_url: REPO_URL, query: QUERY) -> FoundFiles:
        """Find files in a repository with GitHub code search, for example `filename:package.json` or `useState`."""

        result: CodeSearchResult = await self.github_client.search_code(repo_url=repo_url, query=query)

        return FoundFiles(results=[FoundFile.from_code_search_item(item) for item in result.items])

    async def search_github_issues(self, query: QUERY, language: LANGUAGE = None) -> IssueSearchResults:
        """Search issues across GitHub for similar problems, most reacted first. Returns no results if the search fails."""

        search_query: str = f"{query} language:{language}" if language else query

        try:
            result: IssueSearchResult = await self.github_client.search_issues(query=search_query, per_page=ISSUE_SEARCH_LIMIT)
        except ClientError as e:
            self.logger.warning(f"Issue search for {search_query!r} failed: {e}")
            return IssueSearchResults()

        return IssueSearchResults(
            issues=[IssueSummary.from_issue(issue) for issue in result.items[:ISSUE_SEARCH_LIMIT]], total_found=result.total_count
        )

    async def analyze_repository(self, repo_url: REPO_URL, branch: BRANCH = None, state: AgentState | None = None) -> RepositoryAnalysis:
        """Clone a repository, lint it and check its recent CI runs."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)

        try:
            analysis: RepositoryAnalysis = await self._analyze(repo_url=repo_url, coordinates=coordinates, branch=branch)
        except (ClientError, GitError, ValueError, OSError) as e:
            self.logger.exception(f"Failed to analyze {coordinates.full_name}")
            analysis = RepositoryAnalysis(
                repo_name=coordinates.full_name,
                branch=branch or "main",
                last_commit="unknown",
                issues=[
                    CodeIssue(
                        type="build_error",
                        severity="critical",
                        message=f"Failed to analyze repository: {e}",
                        suggestion="Check repository URL and access permissions",
                    )
                ],
                tests_pass=False,
                timestamp=utc_now(),
            )

        if state is not None:
            analysis.state = state.record_check(repo_url=repo_url, status="healthy" if analysis.tests_pass else "issues_detected")

        return analysis

    async def _analyze(self, repo_url: str, coordinates: RepoCoordinates, branch: str | None) -> RepositoryAnalysis:
        repository: Repository = await self.github_client.get_repository(repo_url=repo_url)

        target_branch: str = branch or repository.default_branch or "main"

        async with self.tool_runner.workspace(repo_url=repo_url, branch=target_branch, purpose="analyze") as workspace:
            last_commit: str = workspace.repo.head.commit.hexsha[:SHORT_SHA_LENGTH]

            lint_result = await self.tool_runner.run(
                path=workspace.path, command=get_lint_command() or DEFAULT_LINT_COMMAND, timeout=LINT_TIMEOUT_SECONDS
            )

        issues: list[CodeIssue] = lint_issues(lint_result.output, limit=ANALYSIS_LINT_ISSUES_LIMIT)

        tests_pass: bool = True

        try:
            workflow_runs = await self.github_client.list_workflow_runs(
                repo_url=repo_url, per_page=ANALYSIS_WORKFLOW_RUNS, branch=target_branch
            )
        except ClientError as e:
            self.logger.warning(f"Could not check CI runs for {coordinates.full_name}: {e}")
        else:
            failed_runs = [run for run in workflow_runs.workflow_runs if run.conclusion == "failure"]
            if failed_runs:
                tests_pass = False
                issues.append(
                    CodeIssue(
                        type="test_failure",
                        severity="high",
                        message=f"{len(failed_runs)} recent CI workflow(s) failed",
                        suggestion="Check GitHub Actions logs for failed test details",
                    )
                )

        return RepositoryAnalysis(
            repo_name=coordinates.full_name,
            branch=target_branch,
            last_commit=last_commit,
            issues=issues,
            tests_pass=tests_pass and not issues,
            timestamp=utc_now(),
        )
