from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime

from dropshare.models.file import Lifecycle

# Properties to receive on item update
class FileUpdate(BaseModel):
    original_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None

# Properties shared by models stored in DB
class FileMeta(BaseModel):
    id: int
    user_id: int
    folder_id: Optional[int] = None
    original_name: str
    mime_type: str
    size: int
    checksum: Optional[str] = None
    description: Optional[str] = None
    lifecycle: Lifecycle
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[int] = None
    description: Optional[str] = None

class FolderUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    # Explicit null moves the folder to the root
    parent_id: Optional[int] = None

class Folder(BaseModel):
    id: int
    user_id: int
    parent_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    lifecycle: Lifecycle
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class FolderContents(BaseModel):
    folder: Folder
    files: List[FileMeta]
    subfolders: List[Folder]


class FolderTreeNode(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    children: List["FolderTreeNode"] = []
