"""
SQLAlchemy models for bulk import jobs.

One ``ImportJob`` row is shared by every worker slice of an import. Counters
live on that row and are only ever changed with in-database increments;
error messages and inserted record ids are append-only child rows so that
concurrent slices never rewrite each other's data.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportJobStatus(str, enum.Enum):
    """Lifecycle states for an import job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ImportJob(BaseModel):
    """Progress record for one spreadsheet import split across many slices."""

    __tablename__ = "import_jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    content_type: Mapped[str] = mapped_column(db.String(50), nullable=False, index=True)
    total: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    success: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    percentage: Mapped[float] = mapped_column(db.Float, nullable=False, default=0.0)
    status: Mapped[ImportJobStatus] = mapped_column(
        Enum(ImportJobStatus, name="import_job_status_enum"),
        nullable=False,
        default=ImportJobStatus.PENDING,
        index=True,
    )
    triggered_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    # Set once by a cancel request; slices that start afterwards are skipped
    cancel_requested_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    triggered_by_user = relationship("User", foreign_keys=[triggered_by_user_id])
    error_rows = relationship(
        "ImportJobError",
        back_populates="import_job",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ImportJobError.id",
    )
    record_rows = relationship(
        "ImportJobRecord",
        back_populates="import_job",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ImportJobRecord.id",
    )

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_import_jobs_total_non_negative"),
        CheckConstraint("success >= 0 AND failed >= 0", name="ck_import_jobs_counts_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<ImportJob {self.id} {self.status.value} {self.success + self.failed}/{self.total}>"

    @property
    def processed(self) -> int:
        return (self.success or 0) + (self.failed or 0)

    @property
    def error_messages(self) -> list[str]:
        return [row.message for row in self.error_rows]

    @property
    def inserted_ids(self) -> set[int]:
        return {row.record_id for row in self.record_rows}


class ImportJobError(BaseModel):
    """One error message appended by a failed slice."""

    __tablename__ = "import_job_errors"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message: Mapped[str] = mapped_column(db.Text, nullable=False)

    import_job = relationship("ImportJob", back_populates="error_rows")


class ImportJobRecord(BaseModel):
    """Identifier of a record inserted by a successful slice."""

    __tablename__ = "import_job_records"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content_type: Mapped[str] = mapped_column(db.String(50), nullable=False)
    record_id: Mapped[int] = mapped_column(db.Integer, nullable=False)

    import_job = relationship("ImportJob", back_populates="record_rows")

    __table_args__ = (Index("idx_import_job_records_job_record", "job_id", "record_id"),)
