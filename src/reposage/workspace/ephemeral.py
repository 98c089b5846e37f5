import asyncio
import os
import shutil
import stat
from collections.abc import Callable
from logging import Logger
from pathlib import Path
from types import TracebackType
from typing import Any, Self

from anyio import mkdtemp
from fastmcp.utilities.logging import get_logger
from git.exc import GitError
from git.repo import Repo

from reposage.clients.errors.workspace import WorkspaceAcquisitionFailedError, WorkspaceReleasedError

DEFAULT_WORKSPACE_PREFIX = "reposage-"


def _clear_readonly(func: Callable[[str], Any], path: str, _: BaseException) -> None:
    """Retry a failed removal after making the path writable. Git pack files are read-only."""

    os.chmod(path, stat.S_IWUSR | stat.S_IRUSR | stat.S_IXUSR)
    func(path)


def rmtree_force(path: Path) -> None:
    if not path.exists():
        return

    shutil.rmtree(path, onexc=_clear_readonly)


class EphemeralWorkspace:
    """A temporary directory holding a shallow clone of one repository.

    Use as an async context manager; the directory is removed on exit whether or not the body raised."""

    def __init__(
        self,
        clone_url: str,
        branch: str | None = None,
        prefix: str = DEFAULT_WORKSPACE_PREFIX,
        temp_root: Path | None = None,
        logger: Logger | None = None,
    ):
        self.clone_url: str = clone_url
        self.branch: str | None = branch
        self.prefix: str = prefix
        self.temp_root: Path | None = temp_root
        self.logger: Logger = logger or get_logger(__name__)

        self._path: Path | None = None
        self._released: bool = False
        self._repo: Repo | None = None

    @property
    def path(self) -> Path:
        if self._released or self._path is None:
            raise WorkspaceReleasedError(path=str(self._path))
        return self._path

    @property
    def repo(self) -> Repo:
        if self._repo is None:
            _ = self.path
            self._repo = Repo(self.path)
        return self._repo

    def _clone(self, directory: Path) -> Repo:
        clone_options: dict[str, Any] = {"depth": 1, "single_branch": True}
        if self.branch:
            clone_options["branch"] = self.branch

        return Repo.clone_from(self.clone_url, directory, **clone_options)

    async def acquire(self) -> Path:
        """Create the directory and clone into it.

        Raises:
            WorkspaceAcquisitionFailedError: If the clone fails. Anything created so far is removed first.
        """

        self._path = Path(await mkdtemp(prefix=self.prefix, dir=str(self.temp_root) if self.temp_root else None))

        self.logger.info(f"Cloning {self.clone_url} (branch: {self.branch or 'default'}) to {self._path}")

        try:
            self._repo = await asyncio.to_thread(self._clone, self._path)
        except GitError as e:
            self.logger.error(f"Failed to clone {self.clone_url}: {e}")
            await self.release()
            raise WorkspaceAcquisitionFailedError(clone_url=self.clone_url, branch=self.branch, message=str(e)) from e

        return self._path

    async def release(self) -> None:
        """Remove the directory. Never raises; a failed removal is logged."""

        if self._released:
            return

        self._released = True

        if self._repo is not None:
            self._repo.close()
            self._repo = None

        if self._path is None:
            return

        try:
            await asyncio.to_thread(rmtree_force, self._path)
        except OSError:
            self.logger.exception(f"Failed to remove workspace {self._path}")
            return

        self.logger.info(f"Removed workspace {self._path}")

    @property
    def released(self) -> bool:
        return self._released

    async def __aenter__(self) -> Self:
        _ = await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        await self.release()
