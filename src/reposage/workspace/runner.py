import shlex
from logging import Logger
from pathlib import Path

from fastmcp.utilities.logging import get_logger

from reposage.clients.coordinates import RepoCoordinates, parse_repo_url
from reposage.config import get_clone_base_url, get_workspace_root
from reposage.workspace.ephemeral import DEFAULT_WORKSPACE_PREFIX, EphemeralWorkspace
from reposage.workspace.shell import DEFAULT_MAX_OUTPUT_BYTES, ToolInvocationResult, run_shell

LINT_TIMEOUT_SECONDS = 60.0
TEST_TIMEOUT_SECONDS = 120.0
DEPENDENCY_TIMEOUT_SECONDS = 300.0
FORMAT_TIMEOUT_SECONDS = 300.0

DEFAULT_LINT_COMMAND = 'npm run lint 2>&1 || pnpm lint 2>&1 || yarn lint 2>&1 || eslint . 2>&1 || echo "No linter found"'
LINT_FIX_COMMAND = "npm run lint -- --fix || eslint . --fix"
FORMAT_COMMAND = 'npx prettier --write "**/*.{ts,tsx,js,jsx,json,md}"'
OUTDATED_COMMAND = "npm outdated --json"
AUDIT_COMMAND = "npm audit --json"

NODE_TEST_COMMAND = "npm test || pnpm test || yarn test"

TEST_COMMANDS_BY_MARKER: list[tuple[str, str]] = [
    ("package.json", NODE_TEST_COMMAND),
    ("pyproject.toml", "python -m pytest"),
    ("setup.py", "python -m pytest"),
    ("pytest.ini", "python -m pytest"),
    ("go.mod", "go test ./..."),
    ("Cargo.toml", "cargo test"),
]


def clone_url_for(coordinates: RepoCoordinates, clone_base_url: str | None = None) -> str:
    base_url: str = (clone_base_url or get_clone_base_url()).rstrip("/")
    return f"{base_url}/{coordinates.owner}/{coordinates.repo}.git"


def detect_test_command(path: Path) -> str | None:
    """Pick a test command from the project markers present in a checkout."""

    for marker, command in TEST_COMMANDS_BY_MARKER:
        if (path / marker).exists():
            return command
    return None


def remote_job_command(clone_url: str, command: str, market: str) -> str:
    """Wrap a command in a job for the remote execution service."""

    script: str = f"git clone {shlex.quote(clone_url)} repo && cd repo && {command}"
    return f"nosana job post bash -lc {shlex.quote(script)} --wait --market {shlex.quote(market)}"


class LocalToolRunner:
    """Runs developer tooling against fresh, shallow clones of a repository."""

    def __init__(
        self,
        clone_base_url: str | None = None,
        temp_root: Path | None = None,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        logger: Logger | None = None,
    ):
        self.clone_base_url: str | None = clone_base_url
        self.temp_root: Path | None = temp_root
        self.max_output_bytes: int = max_output_bytes
        self.logger: Logger = logger or get_logger(__name__)

    def clone_url(self, repo_url: str) -> str:
        return clone_url_for(parse_repo_url(repo_url), clone_base_url=self.clone_base_url)

    def workspace(self, repo_url: str, branch: str | None = None, purpose: str | None = None) -> EphemeralWorkspace:
        """An unacquired workspace for the repository. Raises `InvalidRepoUrlError` before touching the filesystem."""

        clone_url: str = self.clone_url(repo_url)
        prefix: str = f"{DEFAULT_WORKSPACE_PREFIX}{purpose}-" if purpose else DEFAULT_WORKSPACE_PREFIX

        return EphemeralWorkspace(
            clone_url=clone_url, branch=branch, prefix=prefix, temp_root=self.temp_root or get_workspace_root(), logger=self.logger
        )

    async def run(self, path: Path, command: str, timeout: float, check: bool = False) -> ToolInvocationResult:
        """Run a command inside a checkout.

        Raises:
            ToolExecutionTimeoutError: If `check` is set and the command timed out.
            ToolExecutionFailedError: If `check` is set and the command exited non-zero.
        """

        result: ToolInvocationResult = await run_shell(command=command, cwd=path, timeout=timeout, max_output_bytes=self.max_output_bytes)

        if check:
            result.raise_for_status(timeout=timeout)

        return result

    async def run_in_clone(
        self, repo_url: str, command: str, timeout: float, branch: str | None = None, check: bool = False
    ) -> ToolInvocationResult:
        """Clone, run one command, and release the clone."""

        async with self.workspace(repo_url=repo_url, branch=branch) as workspace:
            return await self.run(path=workspace.path, command=command, timeout=timeout, check=check)

    async def run_remote(self, repo_url: str, command: str, market: str, timeout: float) -> ToolInvocationResult:
        """Run a command on the remote execution service. Nothing is cloned locally."""

        job_command: str = remote_job_command(clone_url=self.clone_url(repo_url), command=command, market=market)

        self.logger.info(f"Submitting remote job on market {market} for {repo_url}")

        return await run_shell(command=job_command, timeout=timeout, max_output_bytes=self.max_output_bytes)
