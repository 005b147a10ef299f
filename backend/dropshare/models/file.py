import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, BigInteger, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship

from dropshare.db.base_class import Base


class Lifecycle(str, enum.Enum):
    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"

    @property
    def is_eligible(self) -> bool:
        """Whether an entity in this state may be listed, shared or archived."""
        return self is Lifecycle.ACTIVE


class Folder(Base):
    __tablename__ = "folder"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("sys_user.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL parent means the user's root
    parent_id = Column(Integer, ForeignKey("folder.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Recycle Bin fields
    lifecycle = Column(Enum(Lifecycle), default=Lifecycle.ACTIVE, nullable=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    parent = relationship("Folder", remote_side=[id])


class File(Base):
    __tablename__ = "file"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("sys_user.id", ondelete="CASCADE"), nullable=False, index=True)
    folder_id = Column(Integer, ForeignKey("folder.id", ondelete="CASCADE"), nullable=True, index=True)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(255), nullable=False, default="application/octet-stream")
    size = Column(BigInteger, nullable=False, default=0)
    storage_key = Column(String(512), nullable=False)
    thumbnail_key = Column(String(512), nullable=True)
    checksum = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)

    lifecycle = Column(Enum(Lifecycle), default=Lifecycle.ACTIVE, nullable=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    folder = relationship("Folder")
