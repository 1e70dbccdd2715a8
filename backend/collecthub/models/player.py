"""Player model: known play-source keys (e.g. 'm3u8')."""

from sqlalchemy import Column, String, SmallInteger

from collecthub.models.base import Base, IdMixin


class Player(IdMixin, Base):
    __tablename__ = "players"

    from_key = Column(String(60), nullable=False, unique=True)
    name = Column(String(100), nullable=False, default="")
    status = Column(SmallInteger, nullable=False, default=1)
