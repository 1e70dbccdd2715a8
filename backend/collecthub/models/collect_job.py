"""Collect job model: a named recurring collection bound to one or more sources."""

from sqlalchemy import Column, String, Integer, SmallInteger, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship

from collecthub.models.base import Base, IdMixin, TimestampMixin


collect_job_sources = Table(
    "collect_job_sources",
    Base.metadata,
    Column("job_id", Integer, ForeignKey("collect_jobs.id", ondelete="CASCADE"), primary_key=True),
    Column("source_id", Integer, ForeignKey("collect_sources.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("job_id", "source_id", name="uq_job_source"),
)


class CollectJob(IdMixin, TimestampMixin, Base):
    __tablename__ = "collect_jobs"

    name = Column(String(100), nullable=False)

    # Schedule: bare seconds ("3600") or "@every 3600"; empty = manual only
    schedule = Column(String(100), nullable=False, default="")

    # Worker knobs handed out on pull
    collect_time = Column(Integer, nullable=False, default=24)  # hours window
    interval_seconds = Column(Integer, nullable=False, default=1)
    push_workers = Column(Integer, nullable=False, default=1)
    push_interval_seconds = Column(Integer, nullable=False, default=2)
    max_workers = Column(Integer, nullable=False, default=2)

    status = Column(SmallInteger, nullable=False, default=1)  # 1=enabled, 0=disabled

    sources = relationship("CollectSource", secondary=collect_job_sources, lazy="selectin")
