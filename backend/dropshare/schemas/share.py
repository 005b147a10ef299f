import ipaddress
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone

from dropshare.core.config import settings
from dropshare.models.share import Permission

class ShareLinkCreate(BaseModel):
    expires_at: Optional[datetime] = None
    password: Optional[str] = None
    max_downloads: Optional[int] = Field(None, ge=1)
    permissions: Permission = Permission.READ
    ip_allowlist: List[str] = []

    @field_validator("expires_at")
    @classmethod
    def normalize_expiry(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Stored naive in UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @field_validator("password")
    @classmethod
    def check_password_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) < settings.SHARE_PASSWORD_MIN_LENGTH:
            raise ValueError(
                f"Share password must be at least {settings.SHARE_PASSWORD_MIN_LENGTH} characters"
            )
        return v

    @field_validator("ip_allowlist")
    @classmethod
    def check_ip_addresses(cls, v: List[str]) -> List[str]:
        return [str(ipaddress.ip_address(ip.strip())) for ip in v]

# Owner view of a link
class ShareLink(BaseModel):
    id: int
    token: str
    url: str
    target_type: str
    file_id: Optional[int] = None
    folder_id: Optional[int] = None
    target_name: Optional[str] = None
    expires_at: Optional[datetime] = None
    has_password: bool
    max_downloads: Optional[int] = None
    download_count: int
    access_count: int
    last_accessed: Optional[datetime] = None
    permissions: Permission
    is_active: bool
    ip_allowlist: List[str] = []
    created_at: Optional[datetime] = None

# Public info for share page (hide sensitive info)
class ShareResource(BaseModel):
    type: str
    id: int
    name: str
    size: Optional[int] = None
    mime_type: Optional[str] = None
    description: Optional[str] = None

class ShareInfo(BaseModel):
    token: str
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    download_count: int
    permissions: Permission
    has_password: bool
    resource: ShareResource

class ShareAccess(BaseModel):
    password: str

class ShareAccessResult(BaseModel):
    authenticated: bool

class ShareStats(BaseModel):
    token: str
    is_active: bool
    download_count: int
    max_downloads: Optional[int] = None
    access_count: int
    last_accessed: Optional[datetime] = None
    created_at: Optional[datetime] = None

class SharedFileItem(BaseModel):
    id: int
    original_name: str
    size: int
    mime_type: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SharedFolderItem(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SharedFolderContents(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    files: List[SharedFileItem]
    subfolders: List[SharedFolderItem]
