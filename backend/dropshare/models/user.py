from datetime import datetime

from sqlalchemy import Column, Integer, String, BigInteger, Boolean, DateTime, JSON, Text
from sqlalchemy.orm import relationship

from dropshare.core.config import settings
from dropshare.db.base_class import Base

class User(Base):
    __tablename__ = "sys_user"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)
    preferences = Column(JSON, nullable=False, default=dict)
    # Account default; an active subscription overrides it
    storage_limit = Column(BigInteger, nullable=False, default=lambda: settings.DEFAULT_STORAGE_LIMIT)
    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    subscription = relationship("Subscription", back_populates="user", uselist=False)
