ExtraInfoType = dict[str, str | None]


class ClientError(Exception):
    """An error raised by a RepoSage client."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        self.extra_info: ExtraInfoType = extra_info or {}

        msg = message
        if extra_info and any(value is not None for value in extra_info.values()):
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class InvalidRepoUrlError(ClientError):
    """The provided URL does not identify a GitHub repository."""

    def __init__(self, url: str):
        self.url: str = url
        super().__init__(message="The URL is not a GitHub repository URL.", extra_info={"url": url})


class MissingCredentialError(ClientError):
    """A credential required by the operation is not configured."""

    def __init__(self, credential: str, action: str | None = None):
        self.credential: str = credential
        super().__init__(message=f"{credential} is not configured.", extra_info={"action": action})
