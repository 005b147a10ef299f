import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey

from dropshare.db.base_class import Base


class LogAction(str, enum.Enum):
    USER_REGISTER = "user_register"
    USER_UPDATE = "user_update"
    PROFILE_UPDATE = "profile_update"
    PASSWORD_CHANGE = "password_change"
    FILE_UPLOAD = "file_upload"
    FILE_DOWNLOAD = "file_download"
    FILE_DELETE = "file_delete"
    FILE_RESTORE = "file_restore"
    FILE_SHARE = "file_share"
    FOLDER_CREATE = "folder_create"
    FOLDER_UPDATE = "folder_update"
    FOLDER_DELETE = "folder_delete"
    FOLDER_SHARE = "folder_share"
    SHARE_DOWNLOAD = "share_download"
    SHARE_REVOKE = "share_revoke"
    SHARE_DELETE = "share_delete"


class LogCategory(str, enum.Enum):
    AUTHENTICATION = "authentication"
    FILE_MANAGEMENT = "file_management"
    USER_MANAGEMENT = "user_management"
    SECURITY = "security"


class Log(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    # NULL for anonymous share-link access
    user_id = Column(Integer, ForeignKey("sys_user.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(Enum(LogAction), nullable=False, index=True)
    category = Column(Enum(LogCategory), nullable=False, index=True)
    description = Column(Text, nullable=False)
    resource_id = Column(Integer, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
