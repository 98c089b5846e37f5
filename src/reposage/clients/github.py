import json
from collections.abc import Awaitable, Callable
from logging import Logger
from typing import Any
from urllib.parse import quote

import httpx
from fastmcp.utilities.logging import get_logger
from githubkit import GitHub as GitHubKit
from githubkit.auth.token import TokenAuthStrategy
from githubkit.exception import GitHubException as GitHubKitGitHubException
from githubkit.exception import RequestFailed as GitHubKitRequestFailed
from githubkit.response import Response as GitHubKitResponse
from pydantic import BaseModel, ValidationError

from reposage.clients.branches import BranchResolver
from reposage.clients.coordinates import RepoCoordinates, parse_repo_url
from reposage.clients.errors.base import MissingCredentialError
from reposage.clients.errors.upstream import (
    MalformedUpstreamResponseError,
    PathIsDirectoryError,
    RequestError,
    UpstreamHttpError,
)
from reposage.clients.models.github import (
    Branch,
    CodeSearchResult,
    Comment,
    Commit,
    ContentEntry,
    DirectoryEntry,
    Issue,
    IssueSearchResult,
    Label,
    MergeMethod,
    MergeResult,
    PullRequest,
    PullRequestFile,
    Repository,
    RepositoryFile,
    WorkflowRunList,
)
from reposage.config import get_github_token

NOT_FOUND_ERROR = 404

GITHUB_API_VERSION = "2022-11-28"
GITHUB_JSON_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"

DEFAULT_FILES_PER_PAGE = 100
DEFAULT_SEARCH_PER_PAGE = 20
DEFAULT_WORKFLOW_RUNS_PER_PAGE = 10

TITLE_MAX_LENGTH = 256
BODY_MAX_LENGTH = 40000


def get_githubkit_client(token: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> GitHubKit[Any]:
    """Build a githubkit client. Retries are left to the caller."""

    auth = TokenAuthStrategy(token=token) if token else None

    return GitHubKit(auth=auth, auto_retry=False, http_cache=False, async_transport=transport)


def extract_upstream_message(content: bytes) -> str | None:
    """Pull the `message` field out of a GitHub (or OpenAI-style) error body."""

    try:
        body: Any = json.loads(content)
    except (ValueError, UnicodeDecodeError):
        text = content.decode("utf-8", errors="replace").strip()
        return text or None

    if isinstance(body, dict):
        if isinstance(message := body.get("message"), str):  # pyright: ignore[reportUnknownMemberType]
            return message
        if isinstance(error := body.get("error"), dict) and isinstance(message := error.get("message"), str):  # pyright: ignore[reportUnknownMemberType]
            return message

    return None


def clip(text: str, max_length: int) -> str:
    return text[:max_length]


class GitHubRepoClient:
    """Repository operations against the GitHub REST API, addressed by repository URL."""

    githubkit_client: GitHubKit[Any] | None
    logger: Logger

    log_requests: bool
    log_responses: bool
    log_on_error: bool

    def __init__(
        self,
        githubkit_client: GitHubKit[Any] | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Logger | None = None,
        log_requests: bool = True,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        self.githubkit_client = githubkit_client
        self.token: str | None = token
        self.transport: httpx.AsyncBaseTransport | None = transport
        self.logger = logger or get_logger(__name__)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.log_on_error = log_on_error

        self._token_client: GitHubKit[Any] | None = None
        self._token_client_token: str | None = None

        self.branch_resolver: BranchResolver = BranchResolver(
            default_branch_lookup=self._default_branch,
            branch_exists_lookup=self._branch_exists,
            logger=self.logger,
        )

    def _get_token(self) -> str | None:
        return self.token or get_github_token()

    def require_token(self, action: str) -> str:
        """Return the configured token, or raise before any request is made.

        Raises:
            MissingCredentialError: If no GitHub token is configured.
        """

        if not (token := self._get_token()):
            raise MissingCredentialError(credential="GITHUB_TOKEN", action=action)
        return token

    def _get_githubkit_client(self) -> GitHubKit[Any]:
        if self.githubkit_client is not None:
            return self.githubkit_client

        # The token is read at call time, so rebuild the client whenever it changes.
        token: str | None = self._get_token()

        if self._token_client is None or token != self._token_client_token:
            self._token_client = get_githubkit_client(token=token, transport=self.transport)
            self._token_client_token = token

        return self._token_client

    def _get_loggers(
        self, log_request: bool | None = None, log_response: bool | None = None, log_on_error: bool | None = None
    ) -> tuple[Callable[[str], Any], Callable[[str], Any], Callable[[str], Any]]:
        log_request = log_request if log_request is not None else self.log_requests
        log_response = log_response if log_response is not None else self.log_responses
        log_on_error = log_on_error if log_on_error is not None else self.log_on_error

        request_logger = self.logger.info if log_request else self.logger.debug
        response_logger = self.logger.info if log_response else self.logger.debug
        error_logger = self.logger.error if log_on_error else self.logger.debug
        return request_logger, response_logger, error_logger

    async def _perform_rest_request(
        self,
        action: str,
        coordinates: RepoCoordinates,
        resource: str | None = None,
        accept: str = GITHUB_JSON_MEDIA_TYPE,
        log_request: bool | None = None,
        log_on_error: bool | None = None,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[Any]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> GitHubKitResponse[Any]:
        """Perform a request with one of githubkit's REST endpoints.

        Raises:
            UpstreamHttpError: If GitHub answers with a non-success status.
            RequestError: If the request could not be completed.
        """

        request_logger, _, error_logger = self._get_loggers(log_request=log_request, log_on_error=log_on_error)

        request_logger(f"Performing {action} using {method.__name__} for {coordinates.full_name} with kwargs {request_args}")

        headers: dict[str, str] = {"Accept": accept, "X-GitHub-Api-Version": GITHUB_API_VERSION}

        try:
            response: GitHubKitResponse[Any] = await method(headers=headers, **request_args)
        except GitHubKitRequestFailed as e:
            status_code: int = e.response.status_code
            upstream_message: str | None = extract_upstream_message(e.response.content)

            error_logger(f"{action} for {coordinates.full_name} failed with status {status_code}: {upstream_message}")

            raise UpstreamHttpError(
                action=action,
                status_code=status_code,
                status_text=httpx.codes.get_reason_phrase(status_code) or str(status_code),
                upstream_message=upstream_message,
                extra_info={"repository": coordinates.full_name, "resource": resource},
            ) from e
        except GitHubKitGitHubException as e:
            error_logger(f"Error performing {action} for {coordinates.full_name}: {e}")

            raise RequestError(action=action, message=str(e), extra_info={"repository": coordinates.full_name, "resource": resource}) from e

        return response

    def _parse_response[T: BaseModel](
        self, action: str, response: GitHubKitResponse[Any], model: type[T], coordinates: RepoCoordinates
    ) -> T:
        _, response_logger, _ = self._get_loggers()

        if not response.content:
            raise MalformedUpstreamResponseError(action=action, reason="empty body", extra_info={"repository": coordinates.full_name})

        try:
            parsed: T = model.model_validate_json(response.content)
        except ValidationError as e:
            raise MalformedUpstreamResponseError(
                action=action, reason=f"could not parse {model.__name__}", extra_info={"repository": coordinates.full_name}
            ) from e

        response_logger(f"Parsed response for {action} on {coordinates.full_name}: {parsed}")

        return parsed

    def _parse_list_response[T: BaseModel](
        self, action: str, response: GitHubKitResponse[Any], model: type[T], coordinates: RepoCoordinates
    ) -> list[T]:
        try:
            payload: Any = json.loads(response.content)
        except ValueError as e:
            extra_info = {"repository": coordinates.full_name}
            raise MalformedUpstreamResponseError(action=action, reason="invalid JSON", extra_info=extra_info) from e

        if not isinstance(payload, list):
            raise MalformedUpstreamResponseError(action=action, reason="expected a list", extra_info={"repository": coordinates.full_name})

        try:
            return [model.model_validate(item) for item in payload]  # pyright: ignore[reportUnknownVariableType]
        except ValidationError as e:
            raise MalformedUpstreamResponseError(
                action=action, reason=f"could not parse {model.__name__}", extra_info={"repository": coordinates.full_name}
            ) from e

    # Repository

    async def get_repository(self, repo_url: str) -> Repository:
        """Get a repository's metadata."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)

        response = await self._perform_rest_request(
            action="Get repository",
            coordinates=coordinates,
            method=self._get_githubkit_client().rest.repos.async_get,
            owner=coordinates.owner,
            repo=coordinates.repo,
        )

        return self._parse_response("Get repository", response, Repository, coordinates)

    async def _default_branch(self, coordinates: RepoCoordinates) -> str | None:
        try:
            response = await self._perform_rest_request(
                action="Get default branch",
                coordinates=coordinates,
                log_on_error=False,
                method=self._get_githubkit_client().rest.repos.async_get,
                owner=coordinates.owner,
                repo=coordinates.repo,
            )
            repository: Repository = self._parse_response("Get default branch", response, Repository, coordinates)
        except (UpstreamHttpError, RequestError, MalformedUpstreamResponseError) as e:
            self.logger.debug(f"Could not determine the default branch of {coordinates.full_name}: {e}")
            return None

        return repository.default_branch

    async def get_default_branch(self, repo_url: str) -> str | None:
        """Get the default branch of a repository, or None if it cannot be determined."""

        return await self._default_branch(parse_repo_url(repo_url))

    async def _branch_exists(self, coordinates: RepoCoordinates, branch: str) -> bool:
        try:
            response = await self._perform_rest_request(
                action="Get branch",
                coordinates=coordinates,
                resource=branch,
                log_on_error=False,
                method=self._get_githubkit_client().rest.repos.async_get_branch,
                owner=coordinates.owner,
                repo=coordinates.repo,
                branch=quote(branch, safe="/"),
            )
        except UpstreamHttpError as e:
            if e.status_code == NOT_FOUND_ERROR:
                return False
            raise

        return self._parse_response("Get branch", response, Branch, coordinates).name is not None

    async def branch_exists(self, repo_url: str, branch: str) -> bool:
        """Check whether a branch exists in a repository."""

        return await self._branch_exists(parse_repo_url(repo_url), branch)

    # Contents

    async def _get_contents(self, coordinates: RepoCoordinates, path: str, branch: str | None) -> Any:
        ref_args: dict[str, str] = {"ref": branch} if branch else {}

        response = await self._perform_rest_request(
            action="Get contents",
            coordinates=coordinates,
            resource=path,
            log_on_error=False,
            method=self._get_githubkit_client().rest.repos.async_get_content,
            owner=coordinates.owner,
            repo=coordinates.repo,
            path=quote(path.lstrip("/"), safe="/"),
            **ref_args,
        )

        if not response.content:
            raise MalformedUpstreamResponseError(action="Get contents", reason="empty body", extra_info={"path": path})

        try:
            return json.loads(response.content)
        except ValueError as e:
            raise MalformedUpstreamResponseError(action="Get contents", reason="invalid JSON", extra_info={"path": path}) from e

    async def read_file(self, repo_url: str, path: str, branch: str | None = None) -> RepositoryFile:
        """Read a file, falling back across the explicit, default and conventional branches."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Read file")

        async def probe(candidate: str) -> RepositoryFile:
            payload: Any = await self._get_contents(coordinates=coordinates, path=path, branch=candidate)

            if isinstance(payload, list):
                raise PathIsDirectoryError(repository=coordinates.full_name, path=path, branch=candidate)

            content_entry: ContentEntry = ContentEntry.model_validate(payload)

            if content_entry.type == "dir":
                raise PathIsDirectoryError(repository=coordinates.full_name, path=path, branch=candidate)

            if content_entry.content is None:
                raise MalformedUpstreamResponseError(action="Read file", reason="no content in response", extra_info={"path": path})

            return RepositoryFile.from_content_entry(content_entry=content_entry, path=path, branch=candidate)

        _, repository_file = await self.branch_resolver.resolve(
            coordinates=coordinates, probe=probe, resource=f"file {path}", explicit_branch=branch
        )

        return repository_file

    async def list_directory(self, repo_url: str, path: str = "", branch: str | None = None) -> list[DirectoryEntry]:
        """List the entries of a directory. A path naming a file yields a single entry."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="List directory")

        async def probe(candidate: str) -> list[DirectoryEntry]:
            payload: Any = await self._get_contents(coordinates=coordinates, path=path, branch=candidate)

            entries: list[Any] = payload if isinstance(payload, list) else [payload]  # pyright: ignore[reportUnknownVariableType]

            return [DirectoryEntry.from_content_entry(ContentEntry.model_validate(entry)) for entry in entries]

        _, entries = await self.branch_resolver.resolve(
            coordinates=coordinates, probe=probe, resource=f"directory {path or '/'}", explicit_branch=branch
        )

        return entries

    # Search

    async def search_code(self, repo_url: str, query: str, per_page: int = DEFAULT_SEARCH_PER_PAGE) -> CodeSearchResult:
        """Search code within a repository."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Search code")

        response = await self._perform_rest_request(
            action="Search code",
            coordinates=coordinates,
            method=self._get_githubkit_client().rest.search.async_code,
            q=f"{query} repo:{coordinates.full_name}",
            per_page=per_page,
        )

        return self._parse_response("Search code", response, CodeSearchResult, coordinates)

    async def search_issues(
        self, query: str, per_page: int = 5, sort: str = "reactions", order: str = "desc"
    ) -> IssueSearchResult:
        """Search issues across GitHub."""

        self.require_token(action="Search issues")

        coordinates = RepoCoordinates(owner="search", repo="issues")

        response = await self._perform_rest_request(
            action="Search issues",
            coordinates=coordinates,
            method=self._get_githubkit_client().rest.search.async_issues_and_pull_requests,
            q=query,
            sort=sort,
            order=order,
            per_page=per_page,
        )

        return self._parse_response("Search issues", response, IssueSearchResult, coordinates)

    # Issues

    async def create_issue(self, repo_url: str, title: str, body: str = "", labels: list[str] | None = None) -> Issue:
        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Create issue")

        request_body: dict[str, Any] = {"title": clip(title, TITLE_MAX_LENGTH), "body": clip(body, BODY_MAX_LENGTH)}
        if labels:
            request_body["labels"] = labels

        response = await self._perform_rest_request(
            action="Create issue",
            coordinates=coordinates,
            method=self._get_githubkit_client().rest.issues.async_create,
            owner=coordinates.owner,
            repo=coordinates.repo,
            data=request_body,
        )

        return self._parse_response("Create issue", response, Issue, coordinates)

    async def comment_on_issue(self, repo_url: str, issue_number: int, body: str) -> Comment:
        """Post a comment on an issue or pull request."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Comment on issue")

        response = await self._perform_rest_request(
            action="Comment on issue",
            coordinates=coordinates,
            resource=str(issue_number),
            method=self._get_githubkit_client().rest.issues.async_create_comment,
            owner=coordinates.owner,
            repo=coordinates.repo,
            issue_number=issue_number,
            data={"body": clip(body, BODY_MAX_LENGTH)},
        )

        return self._parse_response("Comment on issue", response, Comment, coordinates)

    async def close_issue(self, repo_url: str, issue_number: int) -> Issue:
        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Close issue")

        response = await self._perform_rest_request(
            action="Close issue",
            coordinates=coordinates,
            resource=str(issue_number),
            method=self._get_githubkit_client().rest.issues.async_update,
            owner=coordinates.owner,
            repo=coordinates.repo,
            issue_number=issue_number,
            data={"state": "closed"},
        )

        return self._parse_response("Close issue", response, Issue, coordinates)

    async def add_labels(self, repo_url: str, issue_number: int, labels: list[str]) -> list[str]:
        """Add labels to an issue or pull request and return the labels now applied."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Add labels")

        response = await self._perform_rest_request(
            action="Add labels",
            coordinates=coordinates,
            resource=str(issue_number),
            method=self._get_githubkit_client().rest.issues.async_add_labels,
            owner=coordinates.owner,
            repo=coordinates.repo,
            issue_number=issue_number,
            data={"labels": labels},
        )

        return [label.name for label in self._parse_list_response("Add labels", response, Label, coordinates) if label.name]

    # Pull requests

    async def get_pull_request(self, repo_url: str, pull_number: int) -> PullRequest:
        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Get pull request")

        response = await self._perform_rest_request(
            action="Get pull request",
            coordinates=coordinates,
            resource=str(pull_number),
            method=self._get_githubkit_client().rest.pulls.async_get,
            owner=coordinates.owner,
            repo=coordinates.repo,
            pull_number=pull_number,
        )

        return self._parse_response("Get pull request", response, PullRequest, coordinates)

    async def get_pull_request_diff(self, repo_url: str, pull_number: int) -> str:
        """Get the unified diff of a pull request."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Get pull request diff")

        response = await self._perform_rest_request(
            action="Get pull request diff",
            coordinates=coordinates,
            resource=str(pull_number),
            accept=GITHUB_DIFF_MEDIA_TYPE,
            method=self._get_githubkit_client().rest.pulls.async_get,
            owner=coordinates.owner,
            repo=coordinates.repo,
            pull_number=pull_number,
        )

        return response.content.decode("utf-8", errors="replace")

    async def list_pull_request_commits(self, repo_url: str, pull_number: int) -> list[Commit]:
        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="List pull request commits")

        response = await self._perform_rest_request(
            action="List pull request commits",
            coordinates=coordinates,
            resource=str(pull_number),
            method=self._get_githubkit_client().rest.pulls.async_list_commits,
            owner=coordinates.owner,
            repo=coordinates.repo,
            pull_number=pull_number,
            per_page=DEFAULT_FILES_PER_PAGE,
        )

        return self._parse_list_response("List pull request commits", response, Commit, coordinates)

    async def list_pull_request_files(self, repo_url: str, pull_number: int) -> list[PullRequestFile]:
        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="List pull request files")

        response = await self._perform_rest_request(
            action="List pull request files",
            coordinates=coordinates,
            resource=str(pull_number),
            method=self._get_githubkit_client().rest.pulls.async_list_files,
            owner=coordinates.owner,
            repo=coordinates.repo,
            pull_number=pull_number,
            per_page=DEFAULT_FILES_PER_PAGE,
        )

        return self._parse_list_response("List pull request files", response, PullRequestFile, coordinates)

    async def update_pull_request(self, repo_url: str, pull_number: int, title: str | None = None, body: str | None = None) -> PullRequest:
        """Update the title and/or body of a pull request."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Update pull request")

        request_body: dict[str, Any] = {}
        if title is not None:
            request_body["title"] = clip(title, TITLE_MAX_LENGTH)
        if body is not None:
            request_body["body"] = clip(body, BODY_MAX_LENGTH)

        response = await self._perform_rest_request(
            action="Update pull request",
            coordinates=coordinates,
            resource=str(pull_number),
            method=self._get_githubkit_client().rest.pulls.async_update,
            owner=coordinates.owner,
            repo=coordinates.repo,
            pull_number=pull_number,
            data=request_body,
        )

        return self._parse_response("Update pull request", response, PullRequest, coordinates)

    async def create_pull_request(self, repo_url: str, title: str, head: str, base: str, body: str = "") -> PullRequest:
        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Create pull request")

        response = await self._perform_rest_request(
            action="Create pull request",
            coordinates=coordinates,
            method=self._get_githubkit_client().rest.pulls.async_create,
            owner=coordinates.owner,
            repo=coordinates.repo,
            data={"title": clip(title, TITLE_MAX_LENGTH), "head": head, "base": base, "body": clip(body, BODY_MAX_LENGTH)},
        )

        return self._parse_response("Create pull request", response, PullRequest, coordinates)

    async def merge_pull_request(self, repo_url: str, pull_number: int, merge_method: MergeMethod = "merge") -> MergeResult:
        """Merge a pull request."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Merge pull request")

        response = await self._perform_rest_request(
            action="Merge pull request",
            coordinates=coordinates,
            resource=str(pull_number),
            method=self._get_githubkit_client().rest.pulls.async_merge,
            owner=coordinates.owner,
            repo=coordinates.repo,
            pull_number=pull_number,
            data={"merge_method": merge_method},
        )

        return self._parse_response("Merge pull request", response, MergeResult, coordinates)

    # Actions

    async def dispatch_workflow(self, repo_url: str, workflow_id: str, ref: str, inputs: dict[str, str] | None = None) -> None:
        """Trigger a workflow_dispatch event. GitHub answers 204 with no body."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="Dispatch workflow")

        _ = await self._perform_rest_request(
            action="Dispatch workflow",
            coordinates=coordinates,
            resource=workflow_id,
            method=self._get_githubkit_client().rest.actions.async_create_workflow_dispatch,
            owner=coordinates.owner,
            repo=coordinates.repo,
            workflow_id=quote(workflow_id, safe=""),
            data={"ref": ref, "inputs": inputs or {}},
        )

    async def list_workflow_runs(
        self, repo_url: str, per_page: int = DEFAULT_WORKFLOW_RUNS_PER_PAGE, branch: str | None = None
    ) -> WorkflowRunList:
        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.require_token(action="List workflow runs")

        branch_args: dict[str, str] = {"branch": branch} if branch else {}

        response = await self._perform_rest_request(
            action="List workflow runs",
            coordinates=coordinates,
            method=self._get_githubkit_client().rest.actions.async_list_workflow_runs_for_repo,
            owner=coordinates.owner,
            repo=coordinates.repo,
            per_page=per_page,
            **branch_args,
        )

        return self._parse_response("List workflow runs", response, WorkflowRunList, coordinates)
