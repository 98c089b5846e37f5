from typing import Literal

from pydantic import BaseModel, Field

from reposage.state import AgentState


class ReviewResult(BaseModel):
    success: bool = Field(description="Whether the review was generated.")
    review: str = Field(description="The review, in markdown.")
    model: str = Field(description="The model that wrote the review.")
    published_url: str | None = Field(default=None, description="The URL of the published comment, if the review was published.")


class SuggestionsResult(BaseModel):
    success: bool = Field(description="Whether suggestions were generated.")
    suggestions: str = Field(description="The suggestions, in markdown.")
    model: str = Field(description="The model that wrote the suggestions.")
    published_url: str | None = Field(default=None, description="The URL of the published comment, if any.")


class AnswerResult(BaseModel):
    success: bool = Field(description="Whether an answer was generated.")
    answer: str = Field(description="The answer.")
    model: str = Field(description="The model that wrote the answer.")
    published_url: str | None = Field(default=None, description="The URL of the published comment, if any.")


class LabelsResult(BaseModel):
    success: bool = Field(description="Whether labels were applied.")
    labels: list[str] = Field(default_factory=list, description="The labels that were applied.")


class ChangelogResult(BaseModel):
    success: bool = Field(description="Whether the changelog entry was drafted.")
    changelog: str = Field(description="The changelog entry, in markdown.")
    model: str = Field(description="The model that drafted the entry.")
    published_url: str | None = Field(default=None, description="The URL of the published comment, if any.")


class DescribeResult(BaseModel):
    success: bool = Field(description="Whether a title and description were generated.")
    title: str = Field(description="The suggested title.")
    description: str = Field(description="The suggested description.")
    model: str = Field(description="The model that wrote the suggestion.")
    published: bool = Field(default=False, description="Whether the pull request title and body were updated.")
    published_url: str | None = Field(default=None, description="The URL of the fallback comment, if one was posted.")


class MergeOutcome(BaseModel):
    success: bool = Field(description="Whether the merge request was accepted.")
    merged: bool = Field(description="Whether the pull request was merged.")
    sha: str = Field(description="The SHA of the merge commit.")
    message: str = Field(description="The message from GitHub.")


class PullRequestProposal(BaseModel):
    status: Literal["created", "skipped"] = Field(description="Whether a pull request was opened.")
    branch_name: str = Field(description="The head branch of the pull request.")
    pr_url: str | None = Field(default=None, description="The URL of the pull request, if one was opened.")
    pr_number: int | None = Field(default=None, description="The number of the pull request, if one was opened.")
    message: str = Field(description="A status message.")
    state: AgentState | None = Field(default=None, description="The updated agent state, when one was provided.")


class FixProposal(BaseModel):
    fix: str = Field(description="The proposed change.")
    explanation: str = Field(description="Why the change fixes the problem.")
    confidence: int = Field(description="How confident the model is in the fix, from 0 to 100.")
    model: str = Field(description="The model that proposed the fix.")
