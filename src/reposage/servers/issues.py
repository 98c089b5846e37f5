from logging import Logger
from typing import Any

from fastmcp import FastMCP
from fastmcp.tools.tool import Tool
from fastmcp.utilities.logging import get_logger

from reposage.clients.github import GitHubRepoClient
from reposage.clients.models.github import Comment, Issue
from reposage.servers.models.issues import CommentPosted, IssueClosed, IssueCreated
from reposage.servers.shared.annotations import BODY, ISSUE_NUMBER, LABELS, REPO_URL, TITLE


class IssueServer:
    """Opens, comments on and closes issues."""

    def __init__(self, github_client: GitHubRepoClient, logger: Logger | None = None):
        self.github_client: GitHubRepoClient = github_client
        self.logger: Logger = logger or get_logger(__name__)

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.create_issue))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.comment_on_issue))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.close_issue))

        return fastmcp

    async def create_issue(self, repo_url: REPO_URL, title: TITLE, body: BODY = "", labels: LABELS = None) -> IssueCreated:
        """Open a new issue in a repository."""

        issue: Issue = await self.github_client.create_issue(repo_url=repo_url, title=title, body=body, labels=labels)

        self.logger.info(f"Opened issue #{issue.number} in {repo_url}")

        return IssueCreated(success=True, issue_number=issue.number or 0, issue_url=issue.html_url or "")

    async def comment_on_issue(self, repo_url: REPO_URL, issue_number: ISSUE_NUMBER, body: BODY) -> CommentPosted:
        """Comment on an issue or pull request."""

        comment: Comment = await self.github_client.comment_on_issue(repo_url=repo_url, issue_number=issue_number, body=body)

        return CommentPosted(success=True, comment_url=comment.html_url or "")

    async def close_issue(self, repo_url: REPO_URL, issue_number: ISSUE_NUMBER) -> IssueClosed:
        """Close an issue."""

        _ = await self.github_client.close_issue(repo_url=repo_url, issue_number=issue_number)

        return IssueClosed(success=True, message=f"Issue #{issue_number} closed successfully")
