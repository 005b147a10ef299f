import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from dropshare.core.errors import TokenCollisionError
from dropshare.core.security import get_password_hash
from dropshare.crud.base import CRUDBase
from dropshare.models.share import ShareLink
from dropshare.schemas.share import ShareLinkCreate
from dropshare.services.tokens import generate_token

logger = logging.getLogger(__name__)


class CRUDShareLink(CRUDBase[ShareLink, ShareLinkCreate, ShareLinkCreate]):
    def create_with_owner(
        self,
        db: Session,
        *,
        obj_in: ShareLinkCreate,
        user_id: int,
        file_id: Optional[int] = None,
        folder_id: Optional[int] = None,
        token_factory: Callable[[], str] = generate_token,
    ) -> ShareLink:
        if (file_id is None) == (folder_id is None):
            raise ValueError("A share link targets exactly one file or one folder")

        password_hash = get_password_hash(obj_in.password) if obj_in.password else None

        # The unique index on token is the real guarantee; regenerate once on collision
        for attempt in range(2):
            db_obj = ShareLink(
                token=token_factory(),
                user_id=user_id,
                file_id=file_id,
                folder_id=folder_id,
                expires_at=obj_in.expires_at,
                password_hash=password_hash,
                max_downloads=obj_in.max_downloads,
                permissions=obj_in.permissions,
                ip_allowlist=list(obj_in.ip_allowlist),
            )
            db.add(db_obj)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                if self.get_by_token(db, token=db_obj.token) is None:
                    # Not a token clash, some other constraint failed
                    raise
                logger.warning("Share token collision on attempt %d", attempt + 1)
                continue
            db.refresh(db_obj)
            return db_obj

        raise TokenCollisionError("Share token collided twice; the random source looks broken")

    def get_by_token(self, db: Session, *, token: str) -> Optional[ShareLink]:
        return (
            db.query(ShareLink)
            .options(joinedload(ShareLink.file), joinedload(ShareLink.folder))
            .filter(ShareLink.token == token)
            .first()
        )

    def get_owned(self, db: Session, *, id: int, user_id: int) -> Optional[ShareLink]:
        return db.query(ShareLink).filter(ShareLink.id == id, ShareLink.user_id == user_id).first()

    def get_multi_by_owner(
        self, db: Session, *, user_id: int, skip: int = 0, limit: int = 100
    ) -> List[ShareLink]:
        return (
            db.query(ShareLink)
            .options(joinedload(ShareLink.file), joinedload(ShareLink.folder))
            .filter(ShareLink.user_id == user_id)
            .order_by(ShareLink.created_at.desc(), ShareLink.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def revoke(self, db: Session, *, link: ShareLink) -> ShareLink:
        link.is_active = False
        db.add(link)
        db.commit()
        db.refresh(link)
        return link

    def increment_access(self, db: Session, *, link_id: int) -> bool:
        stmt = (
            update(ShareLink)
            .where(ShareLink.id == link_id)
            .values(access_count=ShareLink.access_count + 1, last_accessed=datetime.utcnow())
        )
        result = db.execute(stmt)
        db.commit()
        return result.rowcount == 1

    def increment_download_if_below_limit(self, db: Session, *, link_id: int) -> bool:
        """
        Compare-and-increment in one statement: the row is only touched while
        the counter is below the ceiling, so concurrent callers cannot overshoot.
        """
        stmt = (
            update(ShareLink)
            .where(
                ShareLink.id == link_id,
                or_(
                    ShareLink.max_downloads.is_(None),
                    ShareLink.download_count < ShareLink.max_downloads,
                ),
            )
            .values(download_count=ShareLink.download_count + 1)
        )
        result = db.execute(stmt)
        db.commit()
        return result.rowcount == 1


share = CRUDShareLink(ShareLink)
