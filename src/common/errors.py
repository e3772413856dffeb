"""Exception types shared by the codec, the pipeline and the orchestrator."""

from typing import Optional


class SubtitleTranslationError(Exception):
    """Base class for errors raised by the translation service."""


class SubtitleReadError(SubtitleTranslationError):
    """Raised when an uploaded subtitle file cannot be read or decoded."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not read '{filename}': {reason}")


class ReconstructionError(SubtitleTranslationError):
    """Raised when a translated document cannot be reassembled."""


class InvalidRunError(SubtitleTranslationError, ValueError):
    """Raised when a translation run is rejected before any file is touched."""


class TranslationBatchError(SubtitleTranslationError):
    """
    Failure of a single translation batch.

    Never propagated past the pipeline; it is recorded on the batch result
    and the batch keeps its original text.
    """

    def __init__(
        self,
        batch_index: int,
        batch_size: int,
        cause: Optional[BaseException] = None,
    ):
        self.batch_index = batch_index
        self.batch_size = batch_size
        self.cause = cause
        message = f"Batch {batch_index + 1} ({batch_size} entries) failed"
        if cause is not None:
            message += f": {type(cause).__name__}: {cause}"
        super().__init__(message)
