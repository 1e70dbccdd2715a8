"""Key/value settings rows holding JSON payloads."""

from sqlalchemy import Column, String, DateTime, JSON

from collecthub.models.base import Base, utcnow


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(64), primary_key=True)
    value_json = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
