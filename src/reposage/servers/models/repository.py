from typing import Self

from pydantic import BaseModel, Field

from reposage.clients.models.github import CodeSearchItem, Issue
from reposage.servers.models.tools import CodeIssue
from reposage.state import AgentState

ISSUE_SUMMARY_LENGTH = 200


class RepositoryAnalysis(BaseModel):
    """The health of a repository at its latest commit."""

    repo_name: str = Field(description="The full name of the repository.")
    branch: str = Field(description="The branch that was analyzed.")
    last_commit: str = Field(description="The abbreviated SHA of the commit that was analyzed.")
    issues: list[CodeIssue] = Field(default_factory=list, description="The problems found.")
    tests_pass: bool = Field(description="Whether recent CI runs passed and no problems were found.")
    timestamp: str = Field(description="When the analysis ran (ISO 8601).")
    state: AgentState | None = Field(default=None, description="The updated agent state, when one was provided.")


class FoundFile(BaseModel):
    name: str = Field(description="The name of the file.")
    path: str = Field(description="The path of the file.")
    html_url: str = Field(description="The URL of the file.")

    @classmethod
    def from_code_search_item(cls, item: CodeSearchItem) -> Self:
        return cls(name=item.name or "", path=item.path or "", html_url=item.html_url or "")


class FoundFiles(BaseModel):
    results: list[FoundFile] = Field(default_factory=list, description="The matching files.")


class IssueSummary(BaseModel):
    title: str = Field(description="The title of the issue.")
    url: str = Field(description="The URL of the issue.")
    state: str = Field(description="The state of the issue.")
    repository: str = Field(description="The full name of the repository the issue belongs to.")
    summary: str = Field(description="The start of the issue body.")

    @classmethod
    def from_issue(cls, issue: Issue) -> Self:
        return cls(
            title=issue.title or "",
            url=issue.html_url or "",
            state=issue.state or "unknown",
            repository="/".join((issue.repository_url or "").split("/")[-2:]),
            summary=(issue.body or "")[:ISSUE_SUMMARY_LENGTH] or "No description",
        )


class IssueSearchResults(BaseModel):
    issues: list[IssueSummary] = Field(default_factory=list, description="The matching issues, most reacted first.")
    total_found: int = Field(default=0, description="The total number of matches reported by GitHub.")
