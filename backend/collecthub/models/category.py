"""Local category taxonomy shared by videos and articles."""

from sqlalchemy import Column, String, Integer, SmallInteger, Index

from collecthub.models.base import Base, IdMixin


CATEGORY_MODULE_VOD = 1
CATEGORY_MODULE_ARTICLE = 2


class Category(IdMixin, Base):
    __tablename__ = "categories"

    name = Column(String(60), nullable=False)
    module = Column(SmallInteger, nullable=False, default=CATEGORY_MODULE_VOD)  # 1=vod, 2=article
    parent_id = Column(Integer, nullable=False, default=0)
    status = Column(SmallInteger, nullable=False, default=1)

    __table_args__ = (
        Index("idx_category_module_name", "module", "name"),
    )
