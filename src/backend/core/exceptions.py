"""
Error taxonomy for the vote pipeline.

Per-vote problems never escape a batch as exceptions; they are collected into
the batch result. Only structural failures (storage) abort a batch.
"""


class VotePipelineError(Exception):
    """Base class for vote pipeline errors."""

    def __init__(self, message: str, code: str = "VOTE_PIPELINE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class VoteValidationError(VotePipelineError):
    """Malformed input, rejected before any mutation. Safe to retry once fixed."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_INPUT")


class DuplicateVoteError(VotePipelineError):
    """An idempotency key or (message, identity) pair was already processed."""

    def __init__(self, message: str):
        super().__init__(message, code="DUPLICATE")


class NotFoundError(VotePipelineError):
    """A referenced message or A/B pair does not exist."""

    def __init__(self, message: str):
        super().__init__(message, code="NOT_FOUND")


class StorageError(VotePipelineError):
    """The storage collaborator is unavailable or an atomic operation failed."""

    def __init__(self, message: str):
        super().__init__(message, code="STORAGE_UNAVAILABLE")


class ConsistencyWarning(UserWarning):
    """A counter was observed at a value that should be impossible."""
