import re
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from reposage.clients.errors.base import InvalidRepoUrlError

REPO_URL_PATTERN = re.compile(r"github\.com/([^/\s]+)/([^/#?\s]+)")


class RepoCoordinates(BaseModel):
    """The owner and name of a GitHub repository."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(description="The owner of the repository.")
    repo: str = Field(description="The name of the repository.")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_url(cls, url: str) -> Self:
        match = REPO_URL_PATTERN.search(url)
        if not match:
            raise InvalidRepoUrlError(url=url)

        owner, repo = match.group(1), match.group(2)
        repo = repo.removesuffix(".git")

        if not owner or not repo:
            raise InvalidRepoUrlError(url=url)

        return cls(owner=owner, repo=repo)


def parse_repo_url(url: str) -> RepoCoordinates:
    """Resolve a GitHub URL like `https://github.com/owner/repo(.git)` to its coordinates."""
    return RepoCoordinates.from_url(url)
