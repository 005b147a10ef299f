from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, EmailStr, Field

class UserBase(BaseModel):
    username: str
    email: EmailStr

class UserCreate(UserBase):
    password: str = Field(..., min_length=8)

class UserUpdate(BaseModel):
    # Admin update schema
    password: Optional[str] = None
    storage_limit: Optional[int] = Field(None, ge=0)
    is_admin: Optional[bool] = None
    is_active: Optional[bool] = None

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    # Merged into the stored preferences, not replacing them
    preferences: Optional[Dict[str, Any]] = None

class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)

class UserInDBBase(UserBase):
    id: int
    full_name: Optional[str] = None
    bio: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None
    storage_limit: int
    is_admin: bool
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class User(UserInDBBase):
    pass

class UserInDB(UserInDBBase):
    password_hash: str

# Derived, never persisted
class QuotaSnapshot(BaseModel):
    used: int
    limit: int
    remaining: int
    percentage: int
    source: str  # "subscription" | "account"
