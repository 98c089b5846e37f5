import asyncio
import time
from logging import Logger
from typing import Annotated, Any

from fastmcp import FastMCP
from fastmcp.tools.tool import Tool
from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, Field

from reposage.clients.coordinates import RepoCoordinates, parse_repo_url
from reposage.clients.errors.base import ClientError
from reposage.clients.github import BODY_MAX_LENGTH, TITLE_MAX_LENGTH, GitHubRepoClient
from reposage.clients.llm import LLMAdvisor
from reposage.clients.models.github import Commit, MergeResult, PullRequest, PullRequestFile, RepositoryFile
from reposage.prompts.extract import extract_object
from reposage.prompts.pull_requests import (
    ASK_SYSTEM_PROMPT,
    CHANGELOG_SYSTEM_PROMPT,
    DESCRIBE_SYSTEM_PROMPT,
    FIX_SYSTEM_PROMPT,
    IMPROVE_SYSTEM_PROMPT,
    LABELS_SYSTEM_PROMPT,
    REVIEW_SYSTEM_PROMPT,
    ask_prompt,
    changelog_prompt,
    describe_prompt,
    fix_prompt,
    improve_prompt,
    labels_prompt,
    review_prompt,
)
from reposage.publish.gate import (
    DEFAULT_MAX_LABELS,
    CommentPayload,
    DescriptionPayload,
    LabelsPayload,
    PublishGate,
    PublishOutcome,
    PublishTarget,
)
from reposage.servers.models.pull_requests import (
    AnswerResult,
    ChangelogResult,
    DescribeResult,
    FixProposal,
    LabelsResult,
    MergeOutcome,
    PullRequestProposal,
    ReviewResult,
    SuggestionsResult,
)
from reposage.servers.shared.annotations import BODY, MAX_LABELS, MERGE_METHOD, PUBLISH, PULL_NUMBER, QUESTION, REPO_URL, TITLE
from reposage.state import AgentState

HEAD_BRANCH = Annotated[
    str | None,
    Field(
        description="A branch that already contains the changes. If not provided, no pull request is opened and a branch name is suggested."
    ),
]
BASE_BRANCH = Annotated[str | None, Field(description="The branch to merge into. Defaults to the repository's default branch.")]
PROBLEM = Annotated[str, Field(description="A description of the problem to fix, such as an error message or failing test.")]
FILE_PATH = Annotated[str | None, Field(description="The file the problem is in, read from the repository for context.")]

CHANGELOG_COMMENT_TEMPLATE = "Proposed CHANGELOG entry:\n\n{changelog}"

LABELS_TEMPERATURE = 0.0
DEFAULT_FIX_CONFIDENCE = 50


class DescriptionSuggestion(BaseModel):
    title: str | None = None
    description: str | None = None


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]  # pyright: ignore[reportUnknownVariableType]


def _confidence(value: Any) -> int:
    try:
        confidence = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_FIX_CONFIDENCE
    return min(max(confidence, 0), 100)


class PullRequestServer:
    """AI-assisted review and maintenance of pull requests."""

    def __init__(
        self,
        github_client: GitHubRepoClient,
        llm_advisor: LLMAdvisor | None = None,
        publish_gate: PublishGate | None = None,
        logger: Logger | None = None,
    ):
        self.github_client: GitHubRepoClient = github_client
        self.llm_advisor: LLMAdvisor = llm_advisor or LLMAdvisor()
        self.publish_gate: PublishGate = publish_gate or PublishGate(github_client=github_client)
        self.logger: Logger = logger or get_logger(__name__)

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.create_pull_request))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.merge_pull_request))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ai_review_pull_request))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ai_improve_pull_request))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ai_ask_pull_request))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.generate_and_apply_labels))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.draft_changelog))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ai_describe_pull_request))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.generate_fix))

        return fastmcp

    def _prepare(self, repo_url: str, action: str) -> RepoCoordinates:
        """Validate the URL and the model credentials before any request is made."""

        coordinates: RepoCoordinates = parse_repo_url(repo_url)
        self.llm_advisor.require_credentials(action=action)
        return coordinates

    async def _publish_comment(self, repo_url: str, pull_number: int, body: str, publish: bool) -> str | None:
        if not publish:
            return None

        outcome: PublishOutcome = await self.publish_gate.publish(
            target=PublishTarget(repo_url=repo_url, number=pull_number), payload=CommentPayload(body=body)
        )
        return outcome.url

    async def create_pull_request(
        self,
        repo_url: REPO_URL,
        title: TITLE,
        body: BODY = "",
        head_branch: HEAD_BRANCH = None,
        base_branch: BASE_BRANCH = None,
        state: AgentState | None = None,
    ) -> PullRequestProposal:
        """Open a pull request from a branch that already contains the changes."""

        _ = parse_repo_url(repo_url)

        if not head_branch:
            branch_name = f"reposage-fix-{int(time.time() * 1000)}"
            return PullRequestProposal(
                status="skipped",
                branch_name=branch_name,
                message=f"PR creation requires a prepared head branch with changes. Suggested branch: {branch_name}.",
                state=state,
            )

        _ = self.github_client.require_token(action="Create pull request")

        base: str = base_branch or await self.github_client.get_default_branch(repo_url=repo_url) or "main"

        pull_request: PullRequest = await self.github_client.create_pull_request(
            repo_url=repo_url, title=title, head=head_branch, base=base, body=body
        )

        if state is not None:
            state = state.record_pr_created(repo_url=repo_url, pr_url=pull_request.html_url)

        return PullRequestProposal(
            status="created",
            branch_name=head_branch,
            pr_url=pull_request.html_url,
            pr_number=pull_request.number,
            message=f"Opened pull request #{pull_request.number} from {head_branch} into {base}",
            state=state,
        )

    async def merge_pull_request(self, repo_url: REPO_URL, pull_number: PULL_NUMBER, merge_method: MERGE_METHOD = "merge") -> MergeOutcome:
        """Merge a pull request."""

        merge_result: MergeResult = await self.github_client.merge_pull_request(
            repo_url=repo_url, pull_number=pull_number, merge_method=merge_method
        )

        return MergeOutcome(
            success=True,
            merged=merge_result.merged or False,
            sha=merge_result.sha or "",
            message=merge_result.message or "PR merged successfully",
        )

    async def ai_review_pull_request(self, repo_url: REPO_URL, pull_number: PULL_NUMBER, publish: PUBLISH = False) -> ReviewResult:
        """Review a pull request's diff and commits with an LLM, optionally posting the review as a comment."""

        coordinates: RepoCoordinates = self._prepare(repo_url=repo_url, action="Review pull request")

        pull_request, diff = await asyncio.gather(
            self.github_client.get_pull_request(repo_url=repo_url, pull_number=pull_number),
            self.github_client.get_pull_request_diff(repo_url=repo_url, pull_number=pull_number),
        )
        commits: list[Commit] = await self._commits_or_empty(repo_url=repo_url, pull_number=pull_number)

        user_prompt: str = review_prompt(
            repository=coordinates.full_name, pull_number=pull_number, pull_request=pull_request, commits=commits, diff=diff
        ).render_text()

        review: str = await self.llm_advisor.ask(system_prompt=REVIEW_SYSTEM_PROMPT, user_prompt=user_prompt)

        published_url = await self._publish_comment(repo_url=repo_url, pull_number=pull_number, body=review, publish=publish)

        return ReviewResult(success=True, review=review, model=self.llm_advisor.model, published_url=published_url)

    async def ai_improve_pull_request(self, repo_url: REPO_URL, pull_number: PULL_NUMBER, publish: PUBLISH = False) -> SuggestionsResult:
        """Suggest code improvements for a pull request without changing it, optionally posting them as a comment."""

        coordinates: RepoCoordinates = self._prepare(repo_url=repo_url, action="Improve pull request")

        pull_request, diff = await asyncio.gather(
            self.github_client.get_pull_request(repo_url=repo_url, pull_number=pull_number),
            self.github_client.get_pull_request_diff(repo_url=repo_url, pull_number=pull_number),
        )

        user_prompt: str = improve_prompt(
            repository=coordinates.full_name, pull_number=pull_number, pull_request=pull_request, diff=diff
        ).render_text()

        suggestions: str = await self.llm_advisor.ask(system_prompt=IMPROVE_SYSTEM_PROMPT, user_prompt=user_prompt)

        published_url = await self._publish_comment(repo_url=repo_url, pull_number=pull_number, body=suggestions, publish=publish)

        return SuggestionsResult(success=True, suggestions=suggestions, model=self.llm_advisor.model, published_url=published_url)

    async def ai_ask_pull_request(
        self, repo_url: REPO_URL, pull_number: PULL_NUMBER, question: QUESTION, publish: PUBLISH = False
    ) -> AnswerResult:
        """Answer a question about a pull request, optionally posting the answer as a comment."""

        coordinates: RepoCoordinates = self._prepare(repo_url=repo_url, action="Ask about pull request")

        pull_request: PullRequest = await self.github_client.get_pull_request(repo_url=repo_url, pull_number=pull_number)

        user_prompt: str = ask_prompt(
            repository=coordinates.full_name, pull_number=pull_number, pull_request=pull_request, question=question
        ).render_text()

        answer: str = await self.llm_advisor.ask(system_prompt=ASK_SYSTEM_PROMPT, user_prompt=user_prompt)

        published_url = await self._publish_comment(repo_url=repo_url, pull_number=pull_number, body=answer, publish=publish)

        return AnswerResult(success=True, answer=answer, model=self.llm_advisor.model, published_url=published_url)

    async def generate_and_apply_labels(
        self, repo_url: REPO_URL, pull_number: PULL_NUMBER, max_labels: MAX_LABELS = DEFAULT_MAX_LABELS
    ) -> LabelsResult:
        """Pick labels for a pull request with an LLM and add them to it."""

        _ = self._prepare(repo_url=repo_url, action="Label pull request")

        pull_request: PullRequest = await self.github_client.get_pull_request(repo_url=repo_url, pull_number=pull_number)

        payload: dict[str, Any] = await self.llm_advisor.ask_json(
            system_prompt=LABELS_SYSTEM_PROMPT,
            user_prompt=labels_prompt(pull_request=pull_request, max_labels=max_labels).render_text(),
            temperature=LABELS_TEMPERATURE,
        )

        suggested: list[str] = _as_str_list(payload.get("labels"))

        outcome: PublishOutcome = await self.publish_gate.publish(
            target=PublishTarget(repo_url=repo_url, number=pull_number),
            payload=LabelsPayload(labels=suggested, max_labels=max_labels),
        )

        return LabelsResult(success=outcome.published, labels=outcome.labels)

    async def draft_changelog(self, repo_url: REPO_URL, pull_number: PULL_NUMBER, publish: PUBLISH = False) -> ChangelogResult:
        """Draft a CHANGELOG entry for a pull request, optionally posting it as a comment."""

        _ = self._prepare(repo_url=repo_url, action="Draft changelog")

        pull_request: PullRequest = await self.github_client.get_pull_request(repo_url=repo_url, pull_number=pull_number)
        commits: list[Commit] = await self._commits_or_empty(repo_url=repo_url, pull_number=pull_number)

        changelog: str = await self.llm_advisor.ask(
            system_prompt=CHANGELOG_SYSTEM_PROMPT, user_prompt=changelog_prompt(pull_request=pull_request, commits=commits).render_text()
        )

        published_url = await self._publish_comment(
            repo_url=repo_url, pull_number=pull_number, body=CHANGELOG_COMMENT_TEMPLATE.format(changelog=changelog), publish=publish
        )

        return ChangelogResult(success=True, changelog=changelog, model=self.llm_advisor.model, published_url=published_url)

    async def ai_describe_pull_request(self, repo_url: REPO_URL, pull_number: PULL_NUMBER, publish: PUBLISH = False) -> DescribeResult:
        """Write a better title and description for a pull request, optionally updating it.

        If the pull request cannot be updated, the suggestion is posted as a comment instead."""

        coordinates: RepoCoordinates = self._prepare(repo_url=repo_url, action="Describe pull request")

        pull_request: PullRequest = await self.github_client.get_pull_request(repo_url=repo_url, pull_number=pull_number)
        files: list[PullRequestFile] = await self._files_or_empty(repo_url=repo_url, pull_number=pull_number)

        payload: dict[str, Any] = await self.llm_advisor.ask_json(
            system_prompt=DESCRIBE_SYSTEM_PROMPT,
            user_prompt=describe_prompt(
                repository=coordinates.full_name, pull_number=pull_number, pull_request=pull_request, files=files
            ).render_text(),
        )

        suggestion: DescriptionSuggestion = extract_object(payload, DescriptionSuggestion) or DescriptionSuggestion()

        title: str = (suggestion.title or pull_request.title or "")[:TITLE_MAX_LENGTH]
        description: str = (suggestion.description or "")[:BODY_MAX_LENGTH]

        result = DescribeResult(success=True, title=title, description=description, model=self.llm_advisor.model)

        if publish:
            outcome: PublishOutcome = await self.publish_gate.publish(
                target=PublishTarget(repo_url=repo_url, number=pull_number),
                payload=DescriptionPayload(title=title, description=description),
            )
            result.published = outcome.published
            result.published_url = outcome.url

        return result

    async def generate_fix(self, repo_url: REPO_URL, problem: PROBLEM, file_path: FILE_PATH = None) -> FixProposal:
        """Propose a fix for a problem in a repository, using the affected file as context when given."""

        coordinates: RepoCoordinates = self._prepare(repo_url=repo_url, action="Generate fix")

        file_content: str | None = None
        if file_path:
            try:
                repository_file: RepositoryFile = await self.github_client.read_file(repo_url=repo_url, path=file_path)
                file_content = repository_file.content
            except ClientError as e:
                self.logger.warning(f"Could not read {file_path} from {coordinates.full_name} for context: {e}")

        payload: dict[str, Any] = await self.llm_advisor.ask_json(
            system_prompt=FIX_SYSTEM_PROMPT,
            user_prompt=fix_prompt(
                repository=coordinates.full_name, problem=problem, file_path=file_path, file_content=file_content
            ).render_text(),
        )

        return FixProposal(
            fix=str(payload.get("fix") or ""),
            explanation=str(payload.get("explanation") or "The model did not provide an explanation."),
            confidence=_confidence(payload.get("confidence")),
            model=self.llm_advisor.model,
        )

    async def _commits_or_empty(self, repo_url: str, pull_number: int) -> list[Commit]:
        try:
            return await self.github_client.list_pull_request_commits(repo_url=repo_url, pull_number=pull_number)
        except ClientError as e:
            self.logger.warning(f"Could not list commits for {repo_url}#{pull_number}: {e}")
            return []

    async def _files_or_empty(self, repo_url: str, pull_number: int) -> list[PullRequestFile]:
        try:
            return await self.github_client.list_pull_request_files(repo_url=repo_url, pull_number=pull_number)
        except ClientError as e:
            self.logger.warning(f"Could not list files for {repo_url}#{pull_number}: {e}")
            return []
