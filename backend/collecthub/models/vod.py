"""Video content model with its play sources and episodes."""

from sqlalchemy import Column, String, Integer, SmallInteger, Float, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from collecthub.models.base import Base, IdMixin, TimestampMixin


class Vod(IdMixin, TimestampMixin, Base):
    __tablename__ = "vods"

    type_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    letter = Column(String(1), nullable=False, default="")
    status = Column(SmallInteger, nullable=False, default=1)
    class_name = Column(String(255), nullable=False, default="")

    pic = Column(String(1024), nullable=False, default="")
    actor = Column(String(1024), nullable=False, default="")
    director = Column(String(255), nullable=False, default="")
    writer = Column(String(255), nullable=False, default="")
    remarks = Column(String(100), nullable=False, default="")
    pubdate = Column(String(100), nullable=False, default="")
    area = Column(String(60), nullable=False, default="")
    lang = Column(String(60), nullable=False, default="")
    year = Column(String(10), nullable=False, default="")
    duration = Column(String(20), nullable=False, default="")
    content = Column(Text, nullable=False, default="")

    # Popularity
    hits = Column(Integer, nullable=False, default=0)
    up = Column(Integer, nullable=False, default=0)
    down = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0.0)

    sources = relationship("VodSource", back_populates="vod", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_vod_name_type", "name", "type_id"),
    )


class VodSource(IdMixin, Base):
    __tablename__ = "vod_sources"

    vod_id = Column(Integer, ForeignKey("vods.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(Integer, nullable=False, default=0)
    player_name = Column(String(60), nullable=False, default="")
    sort = Column(Integer, nullable=False, default=0)

    vod = relationship("Vod", back_populates="sources")
    episodes = relationship("VodEpisode", back_populates="source", cascade="all, delete-orphan")


class VodEpisode(IdMixin, Base):
    __tablename__ = "vod_episodes"

    vod_id = Column(Integer, ForeignKey("vods.id", ondelete="CASCADE"), nullable=False, index=True)
    source_id = Column(Integer, ForeignKey("vod_sources.id", ondelete="CASCADE"), nullable=False)
    episode_num = Column(Integer, nullable=False, default=0)
    title = Column(String(255), nullable=False, default="")
    url = Column(String(2048), nullable=False)
    sort = Column(Integer, nullable=False, default=0)

    source = relationship("VodSource", back_populates="episodes")

    __table_args__ = (
        UniqueConstraint("source_id", "episode_num", name="uq_episode_source_num"),
    )
