"""Exceptions raised by an indexing session."""
from typing import List, Optional


class EsbulkError(Exception):
    """Base exception for esbulk."""


class ConfigurationError(EsbulkError):
    """Raised when options are missing or invalid, before any request is made."""


class SetupError(EsbulkError):
    """Raised when preparing the index fails, before any document is sent."""

    def __init__(self, step: str, message: str):
        super().__init__(f"{step}: {message}")
        self.step = step


class StreamReadError(EsbulkError):
    """Raised when the input stream cannot be read or decompressed."""


class BulkRequestError(EsbulkError):
    """Raised when a bulk request cannot be delivered or is rejected as a whole."""

    def __init__(self, worker: str, size: int, message: str):
        super().__init__(f"{worker}: bulk request of {size} docs failed: {message}")
        self.worker = worker
        self.size = size


class DocumentErrors(EsbulkError):
    """Raised in strict mode when a bulk response reports failed documents."""

    def __init__(self, worker: str, errors: List[dict]):
        super().__init__(f"{worker}: {len(errors)} document(s) rejected")
        self.worker = worker
        self.errors = errors


class WriterError(EsbulkError):
    """Raised by the session when a writer stopped with an error."""

    def __init__(self, worker: str, cause: Optional[BaseException] = None):
        super().__init__(f"writer {worker} failed: {cause}")
        self.worker = worker


class TeardownError(EsbulkError):
    """Raised when restoring index settings or the final flush fails."""

    def __init__(self, errors: List[str]):
        super().__init__("teardown failed: " + "; ".join(errors))
        self.errors = errors
