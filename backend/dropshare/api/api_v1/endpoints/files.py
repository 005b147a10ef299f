import hashlib
import mimetypes
import os
from typing import Any, List, NamedTuple, Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Request
from sqlalchemy.orm import Session

from dropshare import crud, models, schemas
from dropshare.api import deps
from dropshare.api.helpers import link_out, raise_for_decision, stream_object
from dropshare.core.config import settings
from dropshare.models.file import Lifecycle
from dropshare.models.log import LogAction
from dropshare.services import quota, thumbnails
from dropshare.services.storage import StorageBackend, make_object_key
from dropshare.utils.naming import is_filename_valid

router = APIRouter()

ILLEGAL_NAME_DETAIL = 'File name contains illegal characters: < > : " / \\ | ? *'


def _get_owned_file(db: Session, file_id: int, user: models.User, include_deleted: bool = False) -> models.File:
    file = crud.file.get_owned(db, id=file_id, user_id=user.id, include_deleted=include_deleted)
    if not file:
        raise HTTPException(status_code=404, detail="File not found")
    return file


def _measure(fileobj) -> tuple:
    """Size and sha256 of an uploaded file, read in chunks."""
    hasher = hashlib.sha256()
    size = 0
    fileobj.seek(0)
    while content := fileobj.read(1024 * 1024):
        hasher.update(content)
        size += len(content)
    fileobj.seek(0)
    return size, hasher.hexdigest()


class _CheckedUpload(NamedTuple):
    file: UploadFile
    size: int
    checksum: str
    mime_type: str


def _check_upload(file: UploadFile) -> _CheckedUpload:
    """Size and type checks for one incoming file; nothing is stored yet."""
    file_size, checksum = _measure(file.file)
    if file_size > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=413, detail=f"{file.filename} exceeds the maximum upload size")

    mime_type = file.content_type or mimetypes.guess_type(file.filename)[0] or "application/octet-stream"
    allowed = settings.ALLOWED_MIME_TYPES
    if allowed and mime_type.lower() not in allowed:
        raise HTTPException(status_code=415, detail=f"File type {mime_type} is not allowed")
    return _CheckedUpload(file, file_size, checksum, mime_type)


def _store_upload(
        db: Session,
        storage: StorageBackend,
        user: models.User,
        upload: _CheckedUpload,
        folder_id: Optional[int],
        description: Optional[str],
        ip_address: Optional[str],
) -> models.File:
    file = upload.file
    storage_key = storage.put(make_object_key(user.id, file.filename), file.file, upload.mime_type)
    try:
        file_meta = crud.file.create_for_user(
            db,
            user_id=user.id,
            folder_id=folder_id,
            original_name=file.filename,
            mime_type=upload.mime_type,
            size=upload.size,
            storage_key=storage_key,
            checksum=upload.checksum,
            description=description,
        )
    except Exception:
        storage.delete(storage_key)
        raise

    if upload.mime_type.startswith("image/"):
        thumb_key = thumbnails.make_thumbnail(storage, file_meta.id, file.file)
        if thumb_key:
            file_meta = crud.file.set_thumbnail(db, file=file_meta, thumbnail_key=thumb_key)

    crud.log.record(
        db,
        action=LogAction.FILE_UPLOAD,
        description=f"Uploaded {file_meta.original_name} ({upload.size} bytes)",
        user_id=user.id,
        resource_id=file_meta.id,
        ip_address=ip_address,
    )
    return file_meta


def _check_folder(db: Session, folder_id: Optional[int], user: models.User) -> None:
    if folder_id is not None and not crud.folder.get_owned(db, id=folder_id, user_id=user.id):
        raise HTTPException(status_code=404, detail="Folder not found")


@router.get("", response_model=List[schemas.FileMeta])
def read_files(
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        folder_id: Optional[int] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
) -> Any:
    return crud.file.get_by_user_and_folder(
        db, user_id=current_user.id, folder_id=folder_id, search=search, skip=skip, limit=limit
    )


@router.get("/trash", response_model=List[schemas.FileMeta])
def read_trash_files(
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        skip: int = 0,
        limit: int = 100,
) -> Any:
    return crud.file.get_trash(db, user_id=current_user.id, skip=skip, limit=limit)


@router.post("/upload", response_model=schemas.FileMeta)
def upload_file(
        *,
        request: Request,
        db: Session = Depends(deps.get_db),
        storage: StorageBackend = Depends(deps.get_storage),
        current_user: models.User = Depends(deps.get_current_user),
        file: UploadFile = File(...),
        folder_id: Optional[int] = Form(None),
        description: Optional[str] = Form(None),
) -> Any:
    """
    Upload a file. Size, type and the owner's storage quota are checked
    before anything is written to storage.
    """
    if not is_filename_valid(file.filename):
        raise HTTPException(status_code=400, detail=ILLEGAL_NAME_DETAIL)
    _check_folder(db, folder_id, current_user)

    checked = _check_upload(file)
    raise_for_decision(quota.check_quota(db, current_user.id, checked.size))
    return _store_upload(
        db, storage, current_user, checked, folder_id, description, deps.get_client_ip(request)
    )


@router.post("/upload-multiple", response_model=List[schemas.FileMeta])
def upload_files(
        *,
        request: Request,
        db: Session = Depends(deps.get_db),
        storage: StorageBackend = Depends(deps.get_storage),
        current_user: models.User = Depends(deps.get_current_user),
        files: List[UploadFile] = File(...),
        folder_id: Optional[int] = Form(None),
        description: Optional[str] = Form(None),
) -> Any:
    """
    Upload several files at once. Every file is checked and the quota is
    checked against the batch total before any of them is stored.
    """
    if len(files) > settings.MAX_FILES_PER_UPLOAD:
        raise HTTPException(
            status_code=400, detail=f"At most {settings.MAX_FILES_PER_UPLOAD} files per upload"
        )
    if not all(is_filename_valid(f.filename) for f in files):
        raise HTTPException(status_code=400, detail=ILLEGAL_NAME_DETAIL)
    _check_folder(db, folder_id, current_user)

    checked = [_check_upload(f) for f in files]
    raise_for_decision(quota.check_quota(db, current_user.id, sum(c.size for c in checked)))

    ip_address = deps.get_client_ip(request)
    return [
        _store_upload(db, storage, current_user, c, folder_id, description, ip_address)
        for c in checked
    ]


@router.get("/{file_id}", response_model=schemas.FileMeta)
def read_file(
        file_id: int,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    return _get_owned_file(db, file_id, current_user)


@router.put("/{file_id}", response_model=schemas.FileMeta)
def update_file(
        *,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        file_id: int,
        file_in: schemas.FileUpdate,
) -> Any:
    if file_in.original_name and not is_filename_valid(file_in.original_name):
        raise HTTPException(status_code=400, detail=ILLEGAL_NAME_DETAIL)

    file = _get_owned_file(db, file_id, current_user)
    if (
        file_in.original_name
        and file_in.original_name != file.original_name
        and crud.file.name_taken(db, user_id=current_user.id, folder_id=file.folder_id, name=file_in.original_name)
    ):
        raise HTTPException(status_code=409, detail="A file with this name already exists in this folder")

    return crud.file.update(db=db, db_obj=file, obj_in=file_in)


@router.get("/{file_id}/download")
def download_file(
        file_id: int,
        request: Request,
        db: Session = Depends(deps.get_db),
        storage: StorageBackend = Depends(deps.get_storage),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    file = _get_owned_file(db, file_id, current_user)
    chunks = storage.get(file.storage_key)

    crud.log.record(
        db,
        action=LogAction.FILE_DOWNLOAD,
        description=f"Downloaded {file.original_name}",
        user_id=current_user.id,
        resource_id=file.id,
        ip_address=deps.get_client_ip(request),
    )
    return stream_object(chunks, file.original_name, file.mime_type, file.size)


@router.get("/{file_id}/thumbnail")
def read_thumbnail(
        file_id: int,
        db: Session = Depends(deps.get_db),
        storage: StorageBackend = Depends(deps.get_storage),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    file = _get_owned_file(db, file_id, current_user)
    if not file.thumbnail_key:
        raise HTTPException(status_code=404, detail="No thumbnail for this file")
    chunks = storage.get(file.thumbnail_key)
    name = f"{os.path.splitext(file.original_name)[0]}.jpg"
    return stream_object(chunks, name, "image/jpeg")


@router.delete("/{file_id}", response_model=schemas.FileMeta)
def delete_file(
        file_id: int,
        request: Request,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    """
    Move a file to the trash. Its share links stop resolving until it is restored.
    """
    file = crud.file.soft_remove(db, file=_get_owned_file(db, file_id, current_user))
    crud.log.record(
        db,
        action=LogAction.FILE_DELETE,
        description=f"Moved {file.original_name} to trash",
        user_id=current_user.id,
        resource_id=file.id,
        ip_address=deps.get_client_ip(request),
    )
    return file


@router.post("/{file_id}/restore", response_model=schemas.FileMeta)
def restore_file(
        file_id: int,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    file = _get_owned_file(db, file_id, current_user, include_deleted=True)
    if file.lifecycle is Lifecycle.ACTIVE:
        raise HTTPException(status_code=400, detail="File is not in the trash")

    # Trashed files do not count against the quota, so restoring one can exceed it
    raise_for_decision(quota.check_quota(db, current_user.id, file.size))

    file = crud.file.restore(db, file=file)
    crud.log.record(
        db,
        action=LogAction.FILE_RESTORE,
        description=f"Restored {file.original_name}",
        user_id=current_user.id,
        resource_id=file.id,
    )
    return file


@router.delete("/{file_id}/permanent", response_model=schemas.FileMeta)
def permanent_delete_file(
        file_id: int,
        db: Session = Depends(deps.get_db),
        storage: StorageBackend = Depends(deps.get_storage),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    """
    Delete a file for good, together with its stored object and share links.
    """
    file = _get_owned_file(db, file_id, current_user, include_deleted=True)
    storage.delete(file.storage_key)
    if file.thumbnail_key:
        storage.delete(file.thumbnail_key)

    file_out = schemas.FileMeta.model_validate(file)
    crud.file.permanent_remove(db, file=file)
    crud.log.record(
        db,
        action=LogAction.FILE_DELETE,
        description=f"Permanently deleted {file_out.original_name}",
        user_id=current_user.id,
        resource_id=file_out.id,
    )
    return file_out


@router.post("/{file_id}/share", response_model=schemas.ShareLink)
def share_file(
        *,
        file_id: int,
        request: Request,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        share_in: schemas.ShareLinkCreate,
) -> Any:
    file = _get_owned_file(db, file_id, current_user)
    link = crud.share.create_with_owner(db, obj_in=share_in, user_id=current_user.id, file_id=file.id)
    crud.log.record(
        db,
        action=LogAction.FILE_SHARE,
        description=f"Shared {file.original_name} ({link.permissions.value})",
        user_id=current_user.id,
        resource_id=file.id,
        ip_address=deps.get_client_ip(request),
    )
    return link_out(link)
