"""n4-cli exceptions."""


class N4Error(Exception):
    """Base exception for n4-cli.

    ``created`` is filled in by the orchestrator with the resources created
    before the failure, so they can be cleaned up by hand.
    """

    created: tuple = ()


class ConfigError(N4Error):
    """Configuration error."""

    pass


class ProviderError(N4Error):
    """A provider API call failed."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class ProviderUnauthorizedError(ProviderError):
    """The provider rejected the credential (HTTP 401/403)."""

    pass


class ProviderUnavailableError(ProviderError):
    """Network failure or unexpected HTTP status from the provider."""

    pass


class ResourceError(N4Error):
    """Resource resolution error."""

    pass


class ResourceNotFoundError(ResourceError):
    """A named resource does not exist or is not visible to the credential."""

    def __init__(self, kind: str, identifier: str, detail: str | None = None) -> None:
        self.kind = kind
        self.identifier = identifier
        message = f"{kind} not found: {identifier}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ResourceConflictError(ResourceError):
    """Creation failed because a resource with that name already exists (HTTP 409)."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} already exists: {name}")


class NoUsableResourceError(ResourceError):
    """The user declined the only option and no alternative exists."""

    def __init__(self, kind: str, reason: str) -> None:
        self.kind = kind
        super().__init__(f"No usable {kind}: {reason}")


class ProvisioningAbortedError(N4Error):
    """The user chose to exit the run."""

    pass


class FileUpdateError(N4Error):
    """Failed to patch a file in the cloned template."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to update {path}: {reason}")


class ProcessFailedError(N4Error):
    """A child process exited with a non-zero status."""

    def __init__(self, stage: str, exit_code: int, stderr: str = "") -> None:
        self.stage = stage
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"{stage} failed with exit code {exit_code}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
