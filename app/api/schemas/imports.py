from typing import List, Optional

from pydantic import BaseModel, Field

from app.domain.imports.records import ImportConfig, ImportOutcome, ImportSummary, SkippedRow


class ImportRecordView(BaseModel):
    """A parsed CSV row as echoed back to the caller (never includes the password)."""
    username: str
    email: str
    role: str
    line_number: int


class ImportResultView(BaseModel):
    record: ImportRecordView
    success: bool
    error: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: ImportOutcome) -> "ImportResultView":
        return cls(
            record=ImportRecordView(**outcome.record.to_dict()),
            success=outcome.success,
            error=outcome.error,
            user_id=outcome.user_id,
        )


class SkippedRowView(BaseModel):
    """A row left out of the run because it repeats an earlier row of the same file."""
    line_number: int
    username: str
    email: str
    reason: str

    @classmethod
    def from_skipped(cls, row: SkippedRow) -> "SkippedRowView":
        return cls(**row.to_dict())


class ImportSummaryView(BaseModel):
    total_records: int
    success_count: int
    failure_count: int
    processing_time: str
    cancelled: bool = False
    results: List[ImportResultView] = Field(default_factory=list)
    skipped_duplicates: List[SkippedRowView] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: ImportSummary) -> "ImportSummaryView":
        return cls(
            total_records=summary.total_records,
            success_count=summary.success_count,
            failure_count=summary.failure_count,
            processing_time=summary.processing_time,
            cancelled=summary.cancelled,
            results=[ImportResultView.from_outcome(outcome) for outcome in summary.outcomes],
            skipped_duplicates=[SkippedRowView.from_skipped(row) for row in summary.skipped],
        )


class ImportFileInfo(BaseModel):
    filename: Optional[str] = None
    size_bytes: int
    content_type: Optional[str] = None


class ImportConfigView(BaseModel):
    worker_count: int
    batch_size: int
    max_records: int
    timeout_seconds: float
    skip_duplicates: bool

    @classmethod
    def from_config(cls, config: ImportConfig) -> "ImportConfigView":
        return cls(**config.to_dict())


class ImportUsersResponse(BaseModel):
    message: str
    summary: ImportSummaryView
    file_info: ImportFileInfo
    config: ImportConfigView
    processed_at: str


class ImportTimeoutResponse(BaseModel):
    error: str
    summary: Optional[ImportSummaryView] = None
