from reposage.clients.errors.base import ClientError


class WorkspaceAcquisitionFailedError(ClientError):
    """The repository could not be cloned into an ephemeral workspace."""

    def __init__(self, clone_url: str, branch: str | None = None, message: str | None = None):
        super().__init__(message="Failed to acquire workspace.", extra_info={"clone_url": clone_url, "branch": branch, "message": message})


class WorkspaceReleasedError(ClientError):
    """The workspace has already been released."""

    def __init__(self, path: str):
        super().__init__(message="The workspace has been released.", extra_info={"path": path})


class ToolExecutionTimeoutError(ClientError):
    """A tool invocation exceeded its wall-clock timeout."""

    def __init__(self, command: str, timeout: float, output: str = ""):
        self.command: str = command
        self.timeout: float = timeout
        self.output: str = output
        super().__init__(message=f"Command timed out after {timeout}s.", extra_info={"command": command})


class ToolExecutionFailedError(ClientError):
    """A tool invocation exited with a non-zero status."""

    def __init__(self, command: str, exit_status: int, output: str = ""):
        self.command: str = command
        self.exit_status: int = exit_status
        self.output: str = output
        super().__init__(message=f"Command exited with status {exit_status}.", extra_info={"command": command})
