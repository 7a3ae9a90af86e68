from sqlalchemy import (
    Boolean, BigInteger, Column, DateTime, ForeignKey, Index, Integer,
    String, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    username = Column(String(255), primary_key=True)
    object_base_path = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ImageRow(Base):
    __tablename__ = "image"
    __table_args__ = (UniqueConstraint("name", "username", name="uq_image_name_username"),)

    id = Column(String(36), primary_key=True)
    name = Column(String(1024), nullable=False)
    # captured at first upload; object keys never follow renames
    extension = Column(String(16), nullable=False)
    content_type = Column(Integer, nullable=False, default=0)
    username = Column(
        String(255), ForeignKey("users.username", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ImageVersionRow(Base):
    __tablename__ = "image_version"
    __table_args__ = (
        UniqueConstraint("image_id", "version", name="uq_image_version"),
        Index("ix_image_version_lineage", "image_id", "ts", "seq"),
    )

    # insertion order, breaks ties between versions sharing a timestamp
    seq = Column(Integer, primary_key=True, autoincrement=True)
    image_id = Column(String(36), ForeignKey("image.id", ondelete="CASCADE"), nullable=False)
    version = Column(String(1024), nullable=False)
    ts = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    current = Column(Boolean, nullable=False, default=False)
    width = Column(Integer, nullable=False, default=0)
    height = Column(Integer, nullable=False, default=0)
    size = Column(BigInteger, nullable=False, default=0)
