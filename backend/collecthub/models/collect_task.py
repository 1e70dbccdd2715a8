"""Collect task model: the unit of work for one source within one run."""

from sqlalchemy import Column, Integer, SmallInteger, DateTime, Text, ForeignKey, Index, UniqueConstraint

from collecthub.models.base import Base, IdMixin, TimestampMixin
from collecthub.models.collect_run import CollectStatus


class CollectTask(IdMixin, TimestampMixin, Base):
    __tablename__ = "collect_tasks"

    run_id = Column(Integer, ForeignKey("collect_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    source_id = Column(Integer, ForeignKey("collect_sources.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(SmallInteger, nullable=False, default=CollectStatus.PENDING)

    # Resume point
    current_page = Column(Integer, nullable=False, default=1)
    total_pages = Column(Integer, nullable=False, default=0)

    created_count = Column(Integer, nullable=False, default=0)
    updated_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=False, default="")

    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("run_id", "source_id", name="uq_task_run_source"),
        Index("idx_task_status_id", "status", "id"),
    )
