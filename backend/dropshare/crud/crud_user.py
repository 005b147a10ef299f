from typing import Any, Dict, Optional, Union
from sqlalchemy import or_
from sqlalchemy.orm import Session

from dropshare.core.security import get_password_hash, verify_password
from dropshare.crud.base import CRUDBase
from dropshare.models.user import User
from dropshare.schemas.user import ProfileUpdate, UserCreate, UserUpdate


class CRUDUser(CRUDBase[User, UserCreate, UserUpdate]):
    def get_by_username(self, db: Session, *, username: str) -> Optional[User]:
        return db.query(User).filter(User.username == username).first()

    def get_by_email(self, db: Session, *, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email).first()

    def create(self, db: Session, *, obj_in: UserCreate, is_admin: bool = False) -> User:
        db_obj = User(
            username=obj_in.username,
            email=obj_in.email,
            password_hash=get_password_hash(obj_in.password),
            is_admin=is_admin
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def update(
        self, db: Session, *, db_obj: User, obj_in: Union[UserUpdate, Dict[str, Any]]
    ) -> User:
        if isinstance(obj_in, dict):
            update_data = dict(obj_in)
        else:
            update_data = obj_in.model_dump(exclude_unset=True)
        password = update_data.pop("password", None)
        if password:
            update_data["password_hash"] = get_password_hash(password)
        return super().update(db, db_obj=db_obj, obj_in=update_data)

    def update_profile(self, db: Session, *, user: User, obj_in: ProfileUpdate) -> User:
        update_data = obj_in.model_dump(exclude_unset=True)
        preferences = update_data.pop("preferences", None)
        if preferences:
            # A new dict so the JSON column is marked dirty
            update_data["preferences"] = {**(user.preferences or {}), **preferences}
        return super().update(db, db_obj=user, obj_in=update_data)

    def authenticate(
        self, db: Session, *, login: str, password: str
    ) -> Optional[User]:
        # Accept either the email or the username as login
        user = db.query(User).filter(or_(User.email == login, User.username == login)).first()
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def is_active(self, user: User) -> bool:
        return user.is_active

    def is_admin(self, user: User) -> bool:
        return user.is_admin

user = CRUDUser(User)
