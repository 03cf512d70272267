"""Error taxonomy for the generation pipeline.

ValidationError is raised synchronously at submission time. Provider and
storage errors are raised inside a running job and absorbed into job state
by the runner; they never reach the caller of ``submit``.
"""


class NewscastError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(NewscastError):
    """Raised when a brief is malformed and cannot be queued."""


class BriefNotFoundError(ValidationError):
    """Raised when a brief id does not exist in the store."""

    def __init__(self, brief_id: str):
        self.brief_id = brief_id
        super().__init__(f"Brief not found: {brief_id}")


class ProviderError(NewscastError):
    """Base class for synthesis provider failures."""


class TransientProviderError(ProviderError):
    """Rate limit, 5xx or transport failure. Retried per chunk."""


class SynthesisTimeoutError(TransientProviderError):
    """The provider did not answer within the configured timeout."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Synthesis provider did not respond within {timeout_seconds:g}s")


class PermanentProviderError(ProviderError):
    """Request the provider will never accept (bad voice id, bad key). Not retried."""


class StorageError(NewscastError):
    """Object store write failed."""


class JobCancelled(NewscastError):
    """Control-flow signal raised inside the runner when a job was cancelled."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")
