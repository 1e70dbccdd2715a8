"""Collect run model: one execution of a job, fanned out into tasks."""

from enum import IntEnum

from sqlalchemy import Column, String, Integer, SmallInteger, DateTime, Text, ForeignKey, Index

from collecthub.models.base import Base, IdMixin, TimestampMixin


class CollectStatus(IntEnum):
    PENDING = 0
    RUNNING = 1
    DONE = 2
    FAILED = 3

    @property
    def is_terminal(self) -> bool:
        return self in (CollectStatus.DONE, CollectStatus.FAILED)


ACTIVE_STATUSES = (CollectStatus.PENDING, CollectStatus.RUNNING)


class CollectRun(IdMixin, TimestampMixin, Base):
    __tablename__ = "collect_runs"

    job_id = Column(Integer, ForeignKey("collect_jobs.id", ondelete="SET NULL"), index=True)

    status = Column(SmallInteger, nullable=False, default=CollectStatus.PENDING)
    worker_id = Column(String(100), nullable=False, default="")

    progress_page = Column(Integer, nullable=False, default=0)
    progress_total_pages = Column(Integer, nullable=False, default=0)

    # Denormalized from tasks
    pushed_count = Column(Integer, nullable=False, default=0)
    created_count = Column(Integer, nullable=False, default=0)
    updated_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)

    message = Column(Text, nullable=False, default="")
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_run_status_updated", "status", "updated_at"),
        Index("idx_run_job_created", "job_id", "created_at"),
    )
