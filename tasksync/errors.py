class TaskSyncError(Exception):
    """Base class for errors raised by the synchronization core."""


class ProviderUnavailable(TaskSyncError):
    """Network, HTTP or payload failure while talking to a provider.

    Never evidence that the generation job failed: callers leave the local
    record untouched and let the next poll or sweep retry.
    """


class ResultRelocationFailure(TaskSyncError):
    """The provider finished but the artifact could not be copied to our storage."""


class RepositoryFailure(TaskSyncError):
    """Persistence layer error after retries were exhausted."""


class TaskNotFound(TaskSyncError):
    """No local record matches the requested id."""
