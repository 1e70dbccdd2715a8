"""Dedup ledger: one row per remote item already pushed from a source."""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, UniqueConstraint

from collecthub.models.base import Base, IdMixin, utcnow


class CollectRecord(IdMixin, Base):
    __tablename__ = "collect_records"

    task_id = Column(Integer, index=True)
    source_id = Column(Integer, nullable=False)
    remote_id = Column(String(100), nullable=False)
    local_id = Column(Integer)
    is_new = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("source_id", "remote_id", name="uq_record_source_remote"),
    )
