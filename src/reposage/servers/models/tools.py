from typing import Literal

from pydantic import BaseModel, Field

from reposage.state import AgentState
from reposage.workspace.classify import OutcomeStatus
from reposage.workspace.dependencies import OutdatedDependency, Vulnerability

IssueType = Literal["test_failure", "lint_error", "type_error", "build_error", "security_issue"]
IssueSeverity = Literal["critical", "high", "medium", "low"]


class CodeIssue(BaseModel):
    """A problem found in a repository."""

    type: IssueType = Field(description="The kind of problem.")
    severity: IssueSeverity = Field(description="How serious the problem is.")
    file: str | None = Field(default=None, description="The file the problem is in, if known.")
    line: int | None = Field(default=None, description="The line the problem is on, if known.")
    message: str = Field(description="A description of the problem.")
    suggestion: str | None = Field(default=None, description="A suggested fix, if any.")


class RunTestsResult(BaseModel):
    passed: bool = Field(description="Whether the tests passed. False when the outcome could not be determined.")
    status: OutcomeStatus = Field(description="Whether the run passed, failed, or could not be classified.")
    total_tests: int = Field(default=0, description="The total number of tests reported.")
    failed_tests: int = Field(default=0, description="The number of failing tests reported.")
    output: str = Field(default="", description="The first part of the combined output.")
    command: str | None = Field(default=None, description="The command that was run.")
    remote: bool = Field(default=False, description="Whether the tests ran on the remote execution service.")
    timed_out: bool = Field(default=False, description="Whether the run exceeded its timeout.")
    state: AgentState | None = Field(default=None, description="The updated agent state, when one was provided.")


class DependencyReport(BaseModel):
    outdated: list[OutdatedDependency] = Field(default_factory=list, description="The outdated packages.")
    vulnerabilities: list[Vulnerability] = Field(default_factory=list, description="The known vulnerabilities.")
    summary: str = Field(description="A one-line summary of the report.")


class FormatResult(BaseModel):
    success: bool = Field(description="Whether the formatter ran successfully.")
    files_formatted: int = Field(default=0, description="The number of files the formatter changed.")
    changes: list[str] = Field(default_factory=list, description="The files the formatter changed, or a status message.")


class LintFixResult(BaseModel):
    success: bool = Field(description="Whether the linter's fixer ran successfully.")
    errors_fixed: int = Field(default=0, description="The number of lint errors that no longer appear.")
    remaining_errors: int = Field(default=0, description="The number of lint errors that remain.")
    message: str = Field(description="A status message.")
    state: AgentState | None = Field(default=None, description="The updated agent state, when one was provided.")


class CodeQualityReport(BaseModel):
    score: int = Field(description="A quality score from 0 to 100.")
    issues: list[CodeIssue] = Field(default_factory=list, description="The problems found.")
    suggestions: list[str] = Field(default_factory=list, description="Suggested next steps.")
