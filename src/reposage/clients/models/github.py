import base64
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field


def decode_content(content: str) -> str:
    return base64.b64decode(content).decode("utf-8", errors="replace")


class UpstreamRecord(BaseModel):
    """A record parsed from an upstream payload. Unknown fields are dropped and every field is optional."""

    model_config = ConfigDict(extra="ignore")


class Owner(UpstreamRecord):
    login: str | None = None


class Repository(UpstreamRecord):
    """A repository."""

    name: str | None = Field(default=None, description="The name of the repository.")
    full_name: str | None = Field(default=None, description="The full name (owner/repo) of the repository.")
    description: str | None = Field(default=None, description="The description of the repository.")
    html_url: str | None = Field(default=None, description="The URL of the repository.")
    default_branch: str | None = Field(default=None, description="The default branch of the repository.")
    language: str | None = Field(default=None, description="The primary language of the repository.")
    stargazers_count: int | None = Field(default=None, description="The number of stars the repository has.")
    open_issues_count: int | None = Field(default=None, description="The number of open issues.")
    archived: bool | None = Field(default=None, description="Whether the repository is archived.")
    owner: Owner | None = None


class ContentEntry(UpstreamRecord):
    """A file or directory entry returned by the contents API."""

    name: str | None = None
    path: str | None = None
    type: str | None = None
    size: int | None = None
    sha: str | None = None
    html_url: str | None = None
    download_url: str | None = None
    content: str | None = None
    encoding: str | None = None


class RepositoryFile(BaseModel):
    """A decoded file read from a repository."""

    content: str = Field(description="The decoded content of the file.")
    path: str = Field(description="The path of the file.")
    size: int = Field(description="The size of the file in bytes.")
    encoding: str = Field(description="The encoding the content was transferred in.")
    branch: str | None = Field(default=None, exclude=True, description="The branch the file was read from.")

    @classmethod
    def from_content_entry(cls, content_entry: ContentEntry, path: str, branch: str | None = None) -> Self:
        raw_content: str = content_entry.content or ""
        encoding: str = content_entry.encoding or "base64"

        decoded: str = decode_content(raw_content) if encoding == "base64" else raw_content

        return cls(
            content=decoded,
            path=content_entry.path or path,
            size=content_entry.size if content_entry.size is not None else len(decoded.encode("utf-8")),
            encoding=encoding,
            branch=branch,
        )


class DirectoryEntry(BaseModel):
    """An entry in a repository directory listing."""

    name: str = Field(description="The name of the entry.")
    path: str = Field(description="The path of the entry.")
    type: str = Field(description="The type of the entry (file, dir, symlink, submodule).")
    size: int = Field(default=0, description="The size of the entry in bytes.")
    url: str | None = Field(default=None, description="The URL of the entry.")

    @classmethod
    def from_content_entry(cls, content_entry: ContentEntry) -> Self:
        return cls(
            name=content_entry.name or "",
            path=content_entry.path or content_entry.name or "",
            type=content_entry.type or "file",
            size=content_entry.size or 0,
            url=content_entry.html_url,
        )


class CodeSearchItem(UpstreamRecord):
    name: str | None = None
    path: str | None = None
    html_url: str | None = None


class CodeSearchResult(UpstreamRecord):
    total_count: int = 0
    items: list[CodeSearchItem] = Field(default_factory=list)


class Label(UpstreamRecord):
    name: str | None = None


class Reactions(UpstreamRecord):
    total_count: int = 0


class Issue(UpstreamRecord):
    """An issue or pull request as returned by the issues API."""

    number: int | None = None
    title: str | None = None
    body: str | None = None
    state: str | None = None
    html_url: str | None = None
    repository_url: str | None = None
    labels: list[Label] = Field(default_factory=list)
    reactions: Reactions | None = None
    created_at: str | None = None


class IssueSearchResult(UpstreamRecord):
    total_count: int = 0
    items: list[Issue] = Field(default_factory=list)


class Comment(UpstreamRecord):
    id: int | None = None
    html_url: str | None = None
    body: str | None = None


class Branch(UpstreamRecord):
    name: str | None = None


class Ref(UpstreamRecord):
    ref: str | None = None
    sha: str | None = None


class PullRequest(UpstreamRecord):
    """A pull request."""

    number: int | None = None
    title: str | None = None
    body: str | None = None
    state: str | None = None
    html_url: str | None = None
    mergeable: bool | None = None
    head: Ref | None = None
    base: Ref | None = None


class CommitDetail(UpstreamRecord):
    message: str | None = None


class Commit(UpstreamRecord):
    sha: str | None = None
    commit: CommitDetail | None = None

    @property
    def message(self) -> str:
        return self.commit.message if self.commit and self.commit.message else ""


class PullRequestFile(UpstreamRecord):
    filename: str | None = None
    status: str | None = None
    additions: int | None = None
    deletions: int | None = None


class MergeResult(UpstreamRecord):
    sha: str | None = None
    merged: bool | None = None
    message: str | None = None


class WorkflowRun(UpstreamRecord):
    """A GitHub Actions workflow run."""

    id: int | None = None
    name: str | None = None
    status: str | None = None
    conclusion: str | None = None
    run_number: int | None = None
    html_url: str | None = None
    head_branch: str | None = None
    created_at: str | None = None


class WorkflowRunList(UpstreamRecord):
    total_count: int = 0
    workflow_runs: list[WorkflowRun] = Field(default_factory=list)


MergeMethod = Literal["merge", "squash", "rebase"]
