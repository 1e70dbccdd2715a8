"""Per-source mapping from a remote category id to a local category id."""

from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint

from collecthub.models.base import Base, IdMixin, TimestampMixin


class TypeBinding(IdMixin, TimestampMixin, Base):
    __tablename__ = "collect_type_bindings"

    source_id = Column(Integer, ForeignKey("collect_sources.id", ondelete="CASCADE"), nullable=False, index=True)
    remote_type_id = Column(Integer, nullable=False)
    remote_type_name = Column(String(100), nullable=False, default="")
    local_type_id = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("source_id", "remote_type_id", name="uq_type_binding_source_remote"),
    )
