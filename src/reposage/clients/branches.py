from collections.abc import Awaitable, Callable
from logging import Logger

from fastmcp.utilities.logging import get_logger

from reposage.clients.coordinates import RepoCoordinates
from reposage.clients.errors.upstream import BranchNotResolvedError, PathIsDirectoryError

CONVENTIONAL_BRANCHES = ["main", "master"]

DefaultBranchLookup = Callable[[RepoCoordinates], Awaitable[str | None]]
BranchExistsLookup = Callable[[RepoCoordinates, str], Awaitable[bool]]


def branch_candidates(explicit_branch: str | None = None, default_branch: str | None = None) -> list[str]:
    """The ordered, de-duplicated branches to try: explicit, then the repository default, then conventional names."""

    candidates: list[str] = []

    for branch in [explicit_branch, default_branch, *CONVENTIONAL_BRANCHES]:
        if branch and branch not in candidates:
            candidates.append(branch)

    return candidates


class BranchResolver:
    """Finds the first branch on which a read succeeds."""

    def __init__(
        self,
        default_branch_lookup: DefaultBranchLookup,
        branch_exists_lookup: BranchExistsLookup,
        logger: Logger | None = None,
    ):
        self.default_branch_lookup: DefaultBranchLookup = default_branch_lookup
        self.branch_exists_lookup: BranchExistsLookup = branch_exists_lookup
        self.logger: Logger = logger or get_logger(__name__)

    async def candidates(self, coordinates: RepoCoordinates, explicit_branch: str | None = None) -> list[str]:
        default_branch: str | None = await self.default_branch_lookup(coordinates)

        return branch_candidates(explicit_branch=explicit_branch, default_branch=default_branch)

    async def resolve[T](
        self,
        coordinates: RepoCoordinates,
        probe: Callable[[str], Awaitable[T]],
        resource: str,
        explicit_branch: str | None = None,
    ) -> tuple[str, T]:
        """Run `probe` against each candidate branch and return the first branch that succeeds along with its result.

        Raises:
            PathIsDirectoryError: If the probe reports the path is a directory.
            BranchNotResolvedError: If the probe fails on every candidate branch.
        """

        candidates: list[str] = await self.candidates(coordinates=coordinates, explicit_branch=explicit_branch)

        last_error: Exception | None = None

        for branch in candidates:
            try:
                result: T = await probe(branch)
            except PathIsDirectoryError:
                raise
            except Exception as e:  # noqa: BLE001
                self.logger.debug(f"Could not read {resource} from {coordinates.full_name} on branch {branch}: {e}")
                last_error = e
                continue

            self.logger.info(f"Resolved {resource} from {coordinates.full_name} on branch {branch}")

            return branch, result

        hint: str = await self._diagnose(coordinates=coordinates, branch=explicit_branch or candidates[0])

        raise BranchNotResolvedError(
            repository=coordinates.full_name, resource=resource, candidates=candidates, last_error=last_error, hint=hint
        )

    async def _diagnose(self, coordinates: RepoCoordinates, branch: str) -> str:
        try:
            exists: bool = await self.branch_exists_lookup(coordinates, branch)
        except Exception as e:  # noqa: BLE001
            return f"could not check whether branch {branch} exists: {e}"

        if exists:
            return f"branch {branch} exists but the resource was not found on it"

        return f"branch {branch} does not exist"
