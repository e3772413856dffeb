"""Manager-specific schemas and models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from common.utils import DateTimeUtils, JobIdUtils


class FileStatus(str, Enum):
    """Processing status of one uploaded file."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (FileStatus.DONE, FileStatus.ERROR)


# Allowed forward transitions of the per-file state machine
FILE_STATUS_TRANSITIONS: Dict[FileStatus, set] = {
    FileStatus.PENDING: {FileStatus.PROCESSING},
    FileStatus.PROCESSING: {FileStatus.DONE, FileStatus.ERROR},
    FileStatus.DONE: set(),
    FileStatus.ERROR: set(),
}


class FileItem(BaseModel):
    """An uploaded subtitle file and its translation state."""

    id: UUID = Field(default_factory=JobIdUtils.generate_job_id)
    filename: str = Field(..., description="Original upload name")
    source: Any = Field(
        default=None, exclude=True, description="SubtitleSource to read from"
    )
    status: FileStatus = Field(default=FileStatus.PENDING)
    original_text: Optional[str] = None
    translated_text: Optional[str] = None
    translated_filename: Optional[str] = None
    error: Optional[str] = None
    word_count: int = 0
    failed_batches: int = 0

    def transition_to(self, status: FileStatus) -> None:
        """
        Move to ``status``.

        Raises:
            ValueError: If the transition is not a forward step of the state machine
        """
        if status not in FILE_STATUS_TRANSITIONS[self.status]:
            raise ValueError(
                f"Invalid status transition for {self.filename}: "
                f"{self.status.value} -> {status.value}"
            )
        self.status = status


class TranslationRun(BaseModel):
    """One submission of files with its language settings."""

    id: UUID = Field(default_factory=JobIdUtils.generate_job_id)
    source_language: str = Field(..., description="Source language, e.g. 'English'")
    target_language: str = Field(..., description="Target language, e.g. 'Uzbek'")
    custom_prompt: str = Field(default="", description="Extra translator instructions")
    remove_sdh: bool = Field(default=False, description="Strip [..] and (..) annotations")
    files: List[FileItem] = Field(default_factory=list)
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    current_file: Optional[str] = None
    is_processing: bool = False
    created_at: datetime = Field(default_factory=DateTimeUtils.get_current_utc_datetime)

    @field_validator("source_language", "target_language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("language must be a non-empty string")
        return v.strip()

    def get_file(self, file_id: UUID) -> Optional[FileItem]:
        return next((item for item in self.files if item.id == file_id), None)


class TranslationHistoryItem(BaseModel):
    """Record of one successfully translated file."""

    id: UUID = Field(default_factory=JobIdUtils.generate_job_id)
    filename: str
    source_language: str
    target_language: str
    date: datetime = Field(default_factory=DateTimeUtils.get_current_utc_datetime)


class FileItemResponse(BaseModel):
    """File state returned by the API (document bodies left out)."""

    id: UUID
    filename: str
    status: FileStatus
    translated_filename: Optional[str] = None
    error: Optional[str] = None
    word_count: int = 0
    failed_batches: int = 0

    @classmethod
    def from_item(cls, item: FileItem) -> "FileItemResponse":
        return cls(
            id=item.id,
            filename=item.filename,
            status=item.status,
            translated_filename=item.translated_filename,
            error=item.error,
            word_count=item.word_count,
            failed_batches=item.failed_batches,
        )


class TranslationRunResponse(BaseModel):
    """Run state returned by the API."""

    id: UUID
    source_language: str
    target_language: str
    remove_sdh: bool
    progress: float
    current_file: Optional[str] = None
    is_processing: bool
    files: List[FileItemResponse]

    @classmethod
    def from_run(cls, run: TranslationRun) -> "TranslationRunResponse":
        return cls(
            id=run.id,
            source_language=run.source_language,
            target_language=run.target_language,
            remove_sdh=run.remove_sdh,
            progress=run.progress,
            current_file=run.current_file,
            is_processing=run.is_processing,
            files=[FileItemResponse.from_item(item) for item in run.files],
        )
