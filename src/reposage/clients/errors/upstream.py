from reposage.clients.errors.base import ClientError, ExtraInfoType


class RequestError(ClientError):
    """A transport error talking to an upstream API."""

    def __init__(self, action: str, message: str | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(message="A request error occured.", extra_info={"action": action, "message": message, **extra_info})


class UpstreamHttpError(ClientError):
    """An upstream API answered with a non-success HTTP status."""

    def __init__(
        self,
        action: str,
        status_code: int,
        status_text: str,
        upstream_message: str | None = None,
        extra_info: ExtraInfoType | None = None,
    ):
        self.action: str = action
        self.status_code: int = status_code
        self.upstream_message: str | None = upstream_message

        message = f"{status_text} - {upstream_message}" if upstream_message else status_text

        if not extra_info:
            extra_info = {}
        super().__init__(message=f"{action} failed: {message}", extra_info={"status": str(status_code), **extra_info})


class MalformedUpstreamResponseError(ClientError):
    """An upstream API answered successfully but the body could not be used."""

    def __init__(self, action: str, reason: str, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(message=f"{action} returned an unusable response: {reason}", extra_info=extra_info)


class PathIsDirectoryError(ClientError):
    """A file was requested but the path names a directory."""

    def __init__(self, repository: str, path: str, branch: str | None = None):
        self.path: str = path
        super().__init__(
            message="The path is a directory, not a file.",
            extra_info={"repository": repository, "path": path, "branch": branch},
        )


class BranchNotResolvedError(ClientError):
    """None of the candidate branches could serve the requested resource."""

    def __init__(self, repository: str, resource: str, candidates: list[str], last_error: Exception | None = None, hint: str | None = None):
        self.candidates: list[str] = candidates
        self.last_error: Exception | None = last_error
        super().__init__(
            message=f"Could not resolve {resource} on any of the branches {candidates}.",
            extra_info={"repository": repository, "hint": hint, "last_error": str(last_error) if last_error else None},
        )


class PublishFailedError(ClientError):
    """Publishing to GitHub failed."""

    def __init__(self, target: str, message: str | None = None):
        super().__init__(message="Publishing failed.", extra_info={"target": target, "message": message})
