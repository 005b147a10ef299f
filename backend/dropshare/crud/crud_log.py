from typing import Optional

from sqlalchemy.orm import Session

from dropshare.crud.base import CRUDBase
from dropshare.models.log import Log, LogAction, LogCategory


class CRUDLog(CRUDBase[Log, Log, Log]):
    def record(
        self,
        db: Session,
        *,
        action: LogAction,
        description: str,
        category: LogCategory = LogCategory.FILE_MANAGEMENT,
        user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> Log:
        db_obj = Log(
            user_id=user_id,
            action=action,
            category=category,
            description=description,
            resource_id=resource_id,
            ip_address=ip_address,
        )
        db.add(db_obj)
        db.commit()
        return db_obj


log = CRUDLog(Log)
