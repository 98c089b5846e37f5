from logging import Logger
from typing import Literal

from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, Field

from reposage.clients.errors.base import ClientError
from reposage.clients.errors.upstream import PublishFailedError
from reposage.clients.github import GitHubRepoClient
from reposage.clients.models.github import Comment

DEFAULT_MAX_LABELS = 3

DESCRIPTION_FALLBACK_TEMPLATE = "Suggested Title:\n{title}\n\nSuggested Description:\n\n{description}"


def prepare_labels(labels: list[str], max_labels: int = DEFAULT_MAX_LABELS) -> list[str]:
    """Cap, trim and drop empty labels, in that order."""

    return [label.strip() for label in labels[:max_labels] if label.strip()]


class PublishTarget(BaseModel):
    """An issue or pull request to publish to."""

    repo_url: str = Field(description="The URL of the repository.")
    number: int = Field(description="The issue or pull request number.")


class CommentPayload(BaseModel):
    kind: Literal["comment"] = "comment"
    body: str = Field(description="The body of the comment.")


class DescriptionPayload(BaseModel):
    kind: Literal["description"] = "description"
    title: str = Field(description="The new title.")
    description: str = Field(description="The new description.")


class LabelsPayload(BaseModel):
    kind: Literal["labels"] = "labels"
    labels: list[str] = Field(description="The labels to add.")
    max_labels: int = Field(default=DEFAULT_MAX_LABELS, description="The maximum number of labels to add.")


PublishPayload = CommentPayload | DescriptionPayload | LabelsPayload


class PublishOutcome(BaseModel):
    published: bool = Field(default=False, description="Whether the payload was written as requested.")
    url: str | None = Field(default=None, description="The URL of the comment that was posted, if any.")
    fallback_used: bool = Field(default=False, description="Whether a comment was posted in place of the requested update.")
    labels: list[str] = Field(default_factory=list, description="The labels that were applied.")


class PublishGate:
    """Writes results back to GitHub. Failures are logged and reported as an unpublished outcome."""

    def __init__(self, github_client: GitHubRepoClient, logger: Logger | None = None):
        self.github_client: GitHubRepoClient = github_client
        self.logger: Logger = logger or get_logger(__name__)

    async def publish(self, target: PublishTarget, payload: PublishPayload, dry_run: bool = False) -> PublishOutcome:
        if dry_run:
            self.logger.info(f"Dry run: not publishing {payload.kind} to {target.repo_url}#{target.number}")
            return PublishOutcome()

        try:
            if isinstance(payload, CommentPayload):
                return await self._publish_comment(target=target, body=payload.body)
            if isinstance(payload, DescriptionPayload):
                return await self._publish_description(target=target, payload=payload)
            return await self._publish_labels(target=target, payload=payload)
        except PublishFailedError as e:
            self.logger.warning(f"Could not publish {payload.kind} to {target.repo_url}#{target.number}: {e}")
            return PublishOutcome()

    async def _comment(self, target: PublishTarget, body: str) -> Comment:
        try:
            return await self.github_client.comment_on_issue(repo_url=target.repo_url, issue_number=target.number, body=body)
        except ClientError as e:
            raise PublishFailedError(target=f"{target.repo_url}#{target.number}", message=str(e)) from e

    async def _publish_comment(self, target: PublishTarget, body: str) -> PublishOutcome:
        comment: Comment = await self._comment(target=target, body=body)

        return PublishOutcome(published=True, url=comment.html_url)

    async def _publish_description(self, target: PublishTarget, payload: DescriptionPayload) -> PublishOutcome:
        try:
            _ = await self.github_client.update_pull_request(
                repo_url=target.repo_url, pull_number=target.number, title=payload.title, body=payload.description
            )
        except ClientError as e:
            self.logger.warning(f"Could not update {target.repo_url}#{target.number}, posting the suggestion as a comment instead: {e}")
        else:
            return PublishOutcome(published=True)

        comment: Comment = await self._comment(
            target=target, body=DESCRIPTION_FALLBACK_TEMPLATE.format(title=payload.title, description=payload.description)
        )

        return PublishOutcome(published=False, fallback_used=True, url=comment.html_url)

    async def _publish_labels(self, target: PublishTarget, payload: LabelsPayload) -> PublishOutcome:
        labels: list[str] = prepare_labels(payload.labels, max_labels=payload.max_labels)

        if not labels:
            self.logger.info(f"No labels to apply to {target.repo_url}#{target.number}")
            return PublishOutcome()

        try:
            _ = await self.github_client.add_labels(repo_url=target.repo_url, issue_number=target.number, labels=labels)
        except ClientError as e:
            raise PublishFailedError(target=f"{target.repo_url}#{target.number}", message=str(e)) from e

        return PublishOutcome(published=True, labels=labels)
