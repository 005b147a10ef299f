from .token import Token, TokenPayload
from .user import User, UserCreate, UserInDB, UserUpdate, ProfileUpdate, PasswordChange, QuotaSnapshot
from .file import FileMeta, FileUpdate, Folder, FolderCreate, FolderUpdate, FolderContents, FolderTreeNode
from .share import (
    ShareLink, ShareLinkCreate, ShareInfo, ShareResource, ShareAccess, ShareAccessResult,
    ShareStats, SharedFileItem, SharedFolderItem, SharedFolderContents,
)
