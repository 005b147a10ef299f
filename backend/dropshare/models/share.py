import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, JSON, CheckConstraint
)
from sqlalchemy.orm import relationship

from dropshare.db.base_class import Base


class Permission(str, enum.Enum):
    """Share-link capability tier. Declaration order is the tier order."""

    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def allows(self, required: "Permission") -> bool:
        return self.rank >= required.rank

    def __lt__(self, other):
        if isinstance(other, Permission):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, Permission):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, Permission):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, Permission):
            return self.rank >= other.rank
        return NotImplemented


class ShareLink(Base):
    __tablename__ = "share_link"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("sys_user.id", ondelete="CASCADE"), nullable=False, index=True)  # Creator

    # Exactly one target; deleting the target deletes its links
    file_id = Column(Integer, ForeignKey("file.id", ondelete="CASCADE"), nullable=True, index=True)
    folder_id = Column(Integer, ForeignKey("folder.id", ondelete="CASCADE"), nullable=True, index=True)

    expires_at = Column(DateTime, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)
    max_downloads = Column(Integer, nullable=True)  # None for unlimited
    download_count = Column(Integer, default=0, nullable=False)
    access_count = Column(Integer, default=0, nullable=False)
    last_accessed = Column(DateTime, nullable=True)
    permissions = Column(Enum(Permission), default=Permission.READ, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    ip_allowlist = Column(JSON, default=lambda: [], nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    file = relationship("File")
    folder = relationship("Folder")
    user = relationship("User")

    __table_args__ = (
        CheckConstraint(
            "(file_id IS NULL AND folder_id IS NOT NULL) OR (file_id IS NOT NULL AND folder_id IS NULL)",
            name="ck_share_link_single_target",
        ),
        CheckConstraint(
            "max_downloads IS NULL OR download_count <= max_downloads",
            name="ck_share_link_download_ceiling",
        ),
    )

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def target_type(self) -> str:
        return "file" if self.file_id is not None else "folder"
