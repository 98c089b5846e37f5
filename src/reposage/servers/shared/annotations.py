from typing import Annotated, Literal

from pydantic import Field

REPO_URL = Annotated[str, Field(description="The URL of the GitHub repository, for example `https://github.com/owner/repo`.")]
BRANCH = Annotated[str | None, Field(description="The branch to use. If not provided, the repository's default branch is used.")]
PATH = Annotated[str, Field(description="The path of the file, relative to the repository root.")]
DIRECTORY = Annotated[str, Field(description="The directory to list, relative to the repository root. Empty for the root.")]

PULL_NUMBER = Annotated[int, Field(description="The number of the pull request.")]
ISSUE_NUMBER = Annotated[int, Field(description="The number of the issue or pull request.")]

PUBLISH = Annotated[bool, Field(description="Whether to publish the result to the pull request.")]
QUESTION = Annotated[str, Field(description="The question to ask about the pull request.")]
MAX_LABELS = Annotated[int, Field(description="The maximum number of labels to apply.")]
MERGE_METHOD = Annotated[Literal["merge", "squash", "rebase"], Field(description="The merge method to use.")]

TITLE = Annotated[str, Field(description="The title.")]
BODY = Annotated[str, Field(description="The body, in markdown.")]
LABELS = Annotated[list[str] | None, Field(description="The labels to apply.")]

QUERY = Annotated[str, Field(description="The search query.")]

WORKFLOW_ID = Annotated[str, Field(description="The workflow file name (for example `ci.yml`) or numeric workflow id.")]
WORKFLOW_INPUTS = Annotated[dict[str, str] | None, Field(description="The inputs to pass to the workflow.")]

TEST_COMMAND = Annotated[
    str | None, Field(description="The command that runs the tests. If not provided, it is detected from the repository.")
]
REMOTE = Annotated[bool | None, Field(description="Whether to run on the remote execution service. Defaults to the configured setting.")]
