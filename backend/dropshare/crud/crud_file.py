from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from dropshare.crud.base import CRUDBase
from dropshare.models.file import File, Folder, Lifecycle
from dropshare.schemas.file import FileUpdate, FolderCreate, FolderUpdate
from dropshare.utils.naming import dedupe_name


def _folder_filter(column, folder_id: Optional[int]):
    # NULL parent is the user's root
    return column.is_(None) if folder_id is None else column == folder_id


class CRUDFile(CRUDBase[File, FileUpdate, FileUpdate]):
    def get_owned(
        self, db: Session, *, id: int, user_id: int, include_deleted: bool = False
    ) -> Optional[File]:
        query = db.query(File).filter(File.id == id, File.user_id == user_id)
        if not include_deleted:
            query = query.filter(File.lifecycle == Lifecycle.ACTIVE)
        return query.first()

    def get_by_user_and_folder(
        self, db: Session, *, user_id: int, folder_id: Optional[int] = None, search: Optional[str] = None,
        skip: int = 0, limit: int = 100
    ) -> List[File]:
        query = db.query(File).filter(File.user_id == user_id, File.lifecycle == Lifecycle.ACTIVE)

        if search:
            # Search mode: ignore folder_id, search all active files
            query = query.filter(File.original_name.like(f"%{search}%"))
        else:
            query = query.filter(_folder_filter(File.folder_id, folder_id))

        return query.order_by(File.created_at.desc(), File.id.desc()).offset(skip).limit(limit).all()

    def get_active_in_folder(self, db: Session, *, folder_id: int) -> List[File]:
        return (
            db.query(File)
            .filter(File.folder_id == folder_id, File.lifecycle == Lifecycle.ACTIVE)
            .order_by(File.id)
            .all()
        )

    def get_trash(self, db: Session, *, user_id: int, skip: int = 0, limit: int = 100) -> List[File]:
        return (
            db.query(File)
            .filter(File.user_id == user_id, File.lifecycle == Lifecycle.SOFT_DELETED)
            .order_by(File.deleted_at.desc(), File.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def name_taken(self, db: Session, *, user_id: int, folder_id: Optional[int], name: str) -> bool:
        return name in self._taken_names(db, user_id=user_id, folder_id=folder_id)

    def _taken_names(self, db: Session, *, user_id: int, folder_id: Optional[int]) -> set:
        rows = db.query(File.original_name).filter(
            File.user_id == user_id,
            _folder_filter(File.folder_id, folder_id),
            File.lifecycle == Lifecycle.ACTIVE,  # Check against active files
        ).all()
        return {r[0] for r in rows}

    def create_for_user(
        self, db: Session, *, user_id: int, folder_id: Optional[int], original_name: str, mime_type: str,
        size: int, storage_key: str, checksum: Optional[str] = None, description: Optional[str] = None
    ) -> File:
        unique_name = dedupe_name(
            original_name, self._taken_names(db, user_id=user_id, folder_id=folder_id)
        )
        db_obj = File(
            user_id=user_id,
            folder_id=folder_id,
            original_name=unique_name,
            mime_type=mime_type,
            size=size,
            storage_key=storage_key,
            checksum=checksum,
            description=description,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def set_thumbnail(self, db: Session, *, file: File, thumbnail_key: str) -> File:
        file.thumbnail_key = thumbnail_key
        db.add(file)
        db.commit()
        db.refresh(file)
        return file

    def sum_active_size(self, db: Session, *, user_id: int) -> int:
        total = db.query(func.coalesce(func.sum(File.size), 0)).filter(
            File.user_id == user_id, File.lifecycle == Lifecycle.ACTIVE
        ).scalar()
        return int(total or 0)

    def soft_remove(self, db: Session, *, file: File) -> File:
        """
        Soft delete: Mark as deleted
        """
        file.lifecycle = Lifecycle.SOFT_DELETED
        file.deleted_at = datetime.utcnow()
        db.add(file)
        db.commit()
        db.refresh(file)
        return file

    def restore(self, db: Session, *, file: File) -> File:
        """
        Restore from trash, bringing back any deleted ancestor folders so the
        file is reachable again.
        """
        file.lifecycle = Lifecycle.ACTIVE
        file.deleted_at = None
        db.add(file)

        current_id = file.folder_id
        seen = set()
        while current_id is not None and current_id not in seen:
            seen.add(current_id)
            parent = db.query(Folder).filter(Folder.id == current_id, Folder.user_id == file.user_id).first()
            if not parent:
                break
            if parent.lifecycle is Lifecycle.SOFT_DELETED:
                parent.lifecycle = Lifecycle.ACTIVE
                parent.deleted_at = None
                db.add(parent)
            current_id = parent.parent_id

        db.commit()
        db.refresh(file)
        return file

    def permanent_remove(self, db: Session, *, file: File) -> File:
        """
        Hard delete. Share links pointing at the file go with it (ON DELETE CASCADE).
        """
        db.delete(file)
        db.commit()
        return file


class CRUDFolder(CRUDBase[Folder, FolderCreate, FolderUpdate]):
    def get_owned(
        self, db: Session, *, id: int, user_id: int, include_deleted: bool = False
    ) -> Optional[Folder]:
        query = db.query(Folder).filter(Folder.id == id, Folder.user_id == user_id)
        if not include_deleted:
            query = query.filter(Folder.lifecycle == Lifecycle.ACTIVE)
        return query.first()

    def get_children(self, db: Session, *, parent_id: Optional[int], user_id: Optional[int] = None) -> List[Folder]:
        query = db.query(Folder).filter(
            _folder_filter(Folder.parent_id, parent_id), Folder.lifecycle == Lifecycle.ACTIVE
        )
        if user_id is not None:
            query = query.filter(Folder.user_id == user_id)
        return query.order_by(Folder.name, Folder.id).all()

    def get_child_rows(self, db: Session, *, parent_id: int) -> List[Folder]:
        """Every direct subfolder regardless of lifecycle."""
        return db.query(Folder).filter(Folder.parent_id == parent_id).order_by(Folder.id).all()

    def get_ancestor_ids(self, db: Session, *, folder_id: int) -> List[int]:
        """Ids from ``folder_id`` up to its root, stopping if the chain loops."""
        ids: List[int] = []
        current = self.get(db, id=folder_id)
        while current is not None and current.id not in ids:
            ids.append(current.id)
            current = self.get(db, id=current.parent_id) if current.parent_id is not None else None
        return ids

    def get_all_active(self, db: Session, *, user_id: int) -> List[Folder]:
        return (
            db.query(Folder)
            .filter(Folder.user_id == user_id, Folder.lifecycle == Lifecycle.ACTIVE)
            .order_by(Folder.name, Folder.id)
            .all()
        )

    def update_with_move(self, db: Session, *, folder: Folder, obj_in: FolderUpdate) -> Optional[Folder]:
        """
        Rename, describe or re-parent a folder. Returns None when the new
        parent is the folder itself or lies beneath it.
        """
        update_data = obj_in.model_dump(exclude_unset=True)
        parent_id = update_data.get("parent_id", folder.parent_id)
        if parent_id is not None and folder.id in self.get_ancestor_ids(db, folder_id=parent_id):
            return None

        name = update_data.get("name") or folder.name
        if parent_id != folder.parent_id or name != folder.name:
            rows = db.query(Folder.name).filter(
                Folder.user_id == folder.user_id,
                _folder_filter(Folder.parent_id, parent_id),
                Folder.lifecycle == Lifecycle.ACTIVE,
                Folder.id != folder.id,
            ).all()
            name = dedupe_name(name, {r[0] for r in rows})
        update_data.update(name=name, parent_id=parent_id)
        return self.update(db, db_obj=folder, obj_in=update_data)

    def create_with_user(self, db: Session, *, obj_in: FolderCreate, user_id: int) -> Folder:
        rows = db.query(Folder.name).filter(
            Folder.user_id == user_id,
            _folder_filter(Folder.parent_id, obj_in.parent_id),
            Folder.lifecycle == Lifecycle.ACTIVE,
        ).all()
        db_obj = Folder(
            user_id=user_id,
            parent_id=obj_in.parent_id,
            name=dedupe_name(obj_in.name, {r[0] for r in rows}),
            description=obj_in.description,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def soft_remove(self, db: Session, *, folder: Folder) -> Folder:
        """
        Soft delete the folder together with every folder and file beneath it.
        """
        now = datetime.utcnow()
        stack = [folder.id]
        seen = set()
        while stack:
            folder_id = stack.pop()
            if folder_id in seen:
                continue
            seen.add(folder_id)
            db.query(File).filter(
                File.folder_id == folder_id, File.lifecycle == Lifecycle.ACTIVE
            ).update({File.lifecycle: Lifecycle.SOFT_DELETED, File.deleted_at: now}, synchronize_session=False)
            stack.extend(child.id for child in self.get_child_rows(db, parent_id=folder_id))

        db.query(Folder).filter(
            Folder.id.in_(seen), Folder.lifecycle == Lifecycle.ACTIVE
        ).update({Folder.lifecycle: Lifecycle.SOFT_DELETED, Folder.deleted_at: now}, synchronize_session=False)
        db.commit()
        db.refresh(folder)
        return folder


file = CRUDFile(File)
folder = CRUDFolder(Folder)
