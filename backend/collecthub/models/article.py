"""Article content model."""

from sqlalchemy import Column, String, Integer, SmallInteger, Float, Text, Index

from collecthub.models.base import Base, IdMixin, TimestampMixin


class Article(IdMixin, TimestampMixin, Base):
    __tablename__ = "articles"

    type_id = Column(Integer, nullable=False, index=True)
    type_pid = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    sub = Column(String(255), nullable=False, default="")
    letter = Column(String(1), nullable=False, default="")

    pic = Column(String(1024), nullable=False, default="")
    author = Column(String(255), nullable=False, default="")
    source = Column(String(255), nullable=False, default="")
    tag = Column(String(255), nullable=False, default="")
    blurb = Column(String(255), nullable=False, default="")
    remarks = Column(String(100), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    jump_url = Column(String(255), nullable=False, default="")

    level = Column(SmallInteger, nullable=False, default=0)
    status = Column(SmallInteger, nullable=False, default=1)

    hits = Column(Integer, nullable=False, default=0)
    up = Column(Integer, nullable=False, default=0)
    down = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        Index("idx_article_name_type", "name", "type_id"),
    )
