from datetime import UTC, datetime
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field

ACTIVITY_LOG_LIMIT = 50

RepoStatus = Literal["healthy", "issues_detected", "fixing", "pr_created"]


def utc_now() -> str:
    return datetime.now(tz=UTC).isoformat()


class MonitoredRepo(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo_url: str = Field(description="The URL of the repository.")
    last_checked: str = Field(description="When the repository was last checked (ISO 8601).")
    status: RepoStatus = Field(description="The last known status of the repository.")


class AgentState(BaseModel):
    """What the agent remembers between operations. Instances are immutable; every update returns a new instance."""

    model_config = ConfigDict(frozen=True)

    monitored_repos: list[MonitoredRepo] = Field(default_factory=list, description="The repositories being monitored.")
    total_prs_created: int = Field(default=0, description="The number of pull requests created.")
    total_issues_fixed: int = Field(default=0, description="The number of issues fixed.")
    activity_log: list[str] = Field(default_factory=list, description="The most recent activity, oldest first.")

    def log_activity(self, message: str) -> Self:
        activity_log: list[str] = [*self.activity_log, f"[{utc_now()}] {message}"][-ACTIVITY_LOG_LIMIT:]
        return self.model_copy(update={"activity_log": activity_log})

    def record_check(self, repo_url: str, status: RepoStatus) -> Self:
        repo = MonitoredRepo(repo_url=repo_url, last_checked=utc_now(), status=status)

        monitored_repos: list[MonitoredRepo] = [existing for existing in self.monitored_repos if existing.repo_url != repo_url]
        monitored_repos.append(repo)

        return self.model_copy(update={"monitored_repos": monitored_repos}).log_activity(f"Checked {repo_url}: {status}")

    def record_pr_created(self, repo_url: str, pr_url: str | None = None) -> Self:
        updated: Self = self.model_copy(update={"total_prs_created": self.total_prs_created + 1})
        return updated.record_check(repo_url=repo_url, status="pr_created").log_activity(f"Created pull request {pr_url or ''}".strip())

    def record_issues_fixed(self, count: int) -> Self:
        if count <= 0:
            return self
        return self.model_copy(update={"total_issues_fixed": self.total_issues_fixed + count}).log_activity(f"Fixed {count} issue(s)")

    def status_of(self, repo_url: str) -> RepoStatus | None:
        return next((repo.status for repo in self.monitored_repos if repo.repo_url == repo_url), None)
