"""
Retrieval error types.

NotReadyError subclasses RuntimeError and InvalidInputError subclasses
ValueError, so callers that already catch the built-in types keep working.
An empty result list is never an error.
"""


class RetrievalError(Exception):
    """Base class for all retrieval engine errors."""


class NotReadyError(RetrievalError, RuntimeError):
    """Raised when searching before any successful index build."""


class InvalidInputError(RetrievalError, ValueError):
    """
    Raised when a chunk record supplied to a build is malformed.

    Attributes:
        reason: The message without the location suffix
        record_index: Position of the offending record in the input (if known)
        chunk_id: Id of the offending record (if it had one)
    """

    def __init__(self, message: str, record_index: int | None = None, chunk_id=None):
        self.reason = message
        self.record_index = record_index
        self.chunk_id = chunk_id
        location = []
        if record_index is not None:
            location.append(f"record {record_index}")
        if chunk_id is not None:
            location.append(f"chunk_id={chunk_id!r}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)
