"""Collect source model: an external catalog endpoint harvested by workers."""

from sqlalchemy import Column, String, Integer, SmallInteger

from collecthub.models.base import Base, IdMixin, TimestampMixin


class CollectSource(IdMixin, TimestampMixin, Base):
    __tablename__ = "collect_sources"

    name = Column(String(100), nullable=False)
    base_url = Column(String(500), nullable=False, unique=True)
    collect_type = Column(Integer, nullable=False, default=2)  # 1=xml, 2=json
    status = Column(SmallInteger, nullable=False, default=1)  # 1=enabled, 0=disabled
