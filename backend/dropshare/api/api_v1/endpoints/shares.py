import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask

from dropshare import crud, models, schemas
from dropshare.api import deps
from dropshare.api.helpers import (
    attachment_headers, denial_exception, link_out, raise_for_decision, stream_object,
)
from dropshare.core.errors import DenialReason
from dropshare.models.log import LogAction, LogCategory
from dropshare.services import access_recorder, materializer
from dropshare.services.share_policy import Operation, can_access, verify_link_password
from dropshare.services.storage import StorageBackend

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_link(db: Session, token: str) -> models.ShareLink:
    """The link for ``token``; a link whose target is gone or in the trash does not resolve."""
    link = crud.share.get_by_token(db, token=token)
    if not link:
        raise denial_exception(DenialReason.NOT_FOUND)
    target = link.file if link.file_id is not None else link.folder
    if target is None or not target.lifecycle.is_eligible:
        raise denial_exception(DenialReason.NOT_FOUND)
    return link


def _admit(
    link: models.ShareLink,
    operation: Operation,
    request: Request,
    password: Optional[str],
    current_user: Optional[models.User],
) -> None:
    decision = can_access(
        link,
        operation,
        supplied_password=password,
        requester_id=current_user.id if current_user else None,
        client_ip=deps.get_client_ip(request),
    )
    if not decision.allowed:
        logger.info(f"Share {link.id} denied for {operation.name}: {decision.reason.value}")
    raise_for_decision(decision)


def _log_share_download(db: Session, link: models.ShareLink, request: Request,
                        current_user: Optional[models.User], what: str) -> None:
    crud.log.record(
        db,
        action=LogAction.SHARE_DOWNLOAD,
        category=LogCategory.FILE_MANAGEMENT,
        description=f"Share {link.id} downloaded: {what}",
        user_id=current_user.id if current_user else None,
        resource_id=link.id,
        ip_address=deps.get_client_ip(request),
    )


def _is_within(db: Session, folder: models.Folder, root_id: int) -> bool:
    current = folder
    seen = set()
    while current is not None and current.id not in seen:
        if current.id == root_id:
            return True
        seen.add(current.id)
        current = crud.folder.get(db, id=current.parent_id) if current.parent_id is not None else None
    return False


@router.get("/links", response_model=List[schemas.ShareLink])
def read_my_links(
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        skip: int = 0,
        limit: int = 100,
) -> Any:
    links = crud.share.get_multi_by_owner(db, user_id=current_user.id, skip=skip, limit=limit)
    return [link_out(link) for link in links]


@router.get("/{token}", response_model=schemas.ShareInfo)
def read_share_info(
        token: str,
        request: Request,
        db: Session = Depends(deps.get_db),
        current_user: Optional[models.User] = Depends(deps.get_current_user_optional),
) -> Any:
    """
    Public metadata for a share page. Never requires the password and never
    touches the link's counters.
    """
    link = _resolve_link(db, token)
    _admit(link, Operation.PREVIEW, request, None, current_user)

    if link.file is not None:
        resource = schemas.ShareResource(
            type="file",
            id=link.file.id,
            name=link.file.original_name,
            size=link.file.size,
            mime_type=link.file.mime_type,
            description=link.file.description,
        )
    else:
        resource = schemas.ShareResource(
            type="folder",
            id=link.folder.id,
            name=link.folder.name,
            description=link.folder.description,
        )

    return schemas.ShareInfo(
        token=link.token,
        expires_at=link.expires_at,
        max_downloads=link.max_downloads,
        download_count=link.download_count,
        permissions=link.permissions,
        has_password=link.has_password,
        resource=resource,
    )


@router.post("/{token}/access", response_model=schemas.ShareAccessResult)
def verify_share_password(
        token: str,
        access_in: schemas.ShareAccess,
        request: Request,
        db: Session = Depends(deps.get_db),
        current_user: Optional[models.User] = Depends(deps.get_current_user_optional),
) -> Any:
    link = _resolve_link(db, token)
    _admit(link, Operation.PREVIEW, request, None, current_user)
    if not link.has_password:
        raise HTTPException(status_code=400, detail="This share link is not password protected")
    if not verify_link_password(link, access_in.password):
        raise denial_exception(DenialReason.PASSWORD_INVALID)
    return {"authenticated": True}


@router.get("/{token}/download")
def download_shared_file(
        token: str,
        request: Request,
        password: Optional[str] = None,
        db: Session = Depends(deps.get_db),
        storage: StorageBackend = Depends(deps.get_storage),
        current_user: Optional[models.User] = Depends(deps.get_current_user_optional),
) -> Any:
    link = _resolve_link(db, token)
    if link.file is None:
        raise HTTPException(status_code=400, detail="This share link points to a folder; use the zip download")
    _admit(link, Operation.DOWNLOAD, request, password, current_user)

    file = link.file
    # Opened before counting so a missing object does not burn a download
    chunks = storage.get(file.storage_key)
    try:
        if not access_recorder.record_download(db, link):
            raise denial_exception(DenialReason.QUOTA_EXHAUSTED)
        access_recorder.record_access(db, link)
        _log_share_download(db, link, request, current_user, file.original_name)
    except BaseException:
        chunks.close()
        raise
    return stream_object(chunks, file.original_name, file.mime_type, file.size)


@router.get("/{token}/folder", response_model=schemas.SharedFolderContents)
def browse_shared_folder(
        token: str,
        request: Request,
        password: Optional[str] = None,
        subfolder_id: Optional[int] = None,
        db: Session = Depends(deps.get_db),
        current_user: Optional[models.User] = Depends(deps.get_current_user_optional),
) -> Any:
    """
    List one level of a shared folder. ``subfolder_id`` navigates into any
    active folder beneath the shared one.
    """
    link = _resolve_link(db, token)
    if link.folder is None:
        raise HTTPException(status_code=400, detail="This share link points to a file")
    _admit(link, Operation.BROWSE, request, password, current_user)

    folder = link.folder
    if subfolder_id is not None and subfolder_id != folder.id:
        sub = crud.folder.get(db, id=subfolder_id)
        if sub is None or not sub.lifecycle.is_eligible or not _is_within(db, sub, folder.id):
            raise HTTPException(status_code=404, detail="Folder not found in this share")
        folder = sub

    access_recorder.record_access(db, link)
    return {
        "id": folder.id,
        "name": folder.name,
        "description": folder.description,
        "files": crud.file.get_active_in_folder(db, folder_id=folder.id),
        "subfolders": crud.folder.get_children(db, parent_id=folder.id),
    }


@router.get("/{token}/zip")
def download_shared_folder(
        token: str,
        request: Request,
        password: Optional[str] = None,
        db: Session = Depends(deps.get_db),
        storage: StorageBackend = Depends(deps.get_storage),
        current_user: Optional[models.User] = Depends(deps.get_current_user_optional),
) -> Any:
    """
    Download a shared folder as a zip archive. Needs a write-tier link.
    """
    link = _resolve_link(db, token)
    if link.folder is None:
        raise HTTPException(status_code=400, detail="This share link points to a file; use the file download")
    _admit(link, Operation.ARCHIVE, request, password, current_user)

    entries = materializer.collect_files(db, link.folder.id)
    if not entries:
        raise denial_exception(DenialReason.EMPTY_ARCHIVE)

    job = materializer.ArchiveJob(storage, entries, f"{link.folder.name}_shared").build()
    try:
        if len(job.skipped) == len(entries):
            raise denial_exception(DenialReason.EMPTY_ARCHIVE)
        if not access_recorder.record_download(db, link):
            raise denial_exception(DenialReason.QUOTA_EXHAUSTED)
        access_recorder.record_access(db, link)
        _log_share_download(db, link, request, current_user, job.filename)
    except BaseException:
        job.cleanup()
        raise
    return StreamingResponse(
        job.iter_chunks(),
        media_type="application/zip",
        headers=attachment_headers(job.filename, job.size),
        background=BackgroundTask(job.cleanup),
    )


@router.get("/{token}/stats", response_model=schemas.ShareStats)
def read_share_stats(
        token: str,
        request: Request,
        password: Optional[str] = None,
        db: Session = Depends(deps.get_db),
        current_user: Optional[models.User] = Depends(deps.get_current_user_optional),
) -> Any:
    """
    Usage counters. Only the creator of an admin-tier link may read them.
    """
    link = _resolve_link(db, token)
    _admit(link, Operation.MANAGE, request, password, current_user)
    return schemas.ShareStats(
        token=link.token,
        is_active=link.is_active,
        download_count=link.download_count,
        max_downloads=link.max_downloads,
        access_count=link.access_count,
        last_accessed=link.last_accessed,
        created_at=link.created_at,
    )


@router.post("/{link_id}/revoke", response_model=schemas.ShareLink)
def revoke_share(
        link_id: int,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    """
    Deactivate a link. Requests already streaming are allowed to finish.
    """
    link = crud.share.get_owned(db, id=link_id, user_id=current_user.id)
    if not link:
        raise HTTPException(status_code=404, detail="Share link not found")
    link = crud.share.revoke(db, link=link)
    crud.log.record(
        db,
        action=LogAction.SHARE_REVOKE,
        category=LogCategory.SECURITY,
        description=f"Revoked share link {link.id}",
        user_id=current_user.id,
        resource_id=link.id,
    )
    return link_out(link)


@router.delete("/{link_id}")
def delete_share(
        link_id: int,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    link = crud.share.get_owned(db, id=link_id, user_id=current_user.id)
    if not link:
        raise HTTPException(status_code=404, detail="Share link not found")
    crud.share.remove(db, id=link.id)
    crud.log.record(
        db,
        action=LogAction.SHARE_DELETE,
        category=LogCategory.SECURITY,
        description=f"Deleted share link {link_id}",
        user_id=current_user.id,
        resource_id=link_id,
    )
    return {"message": "Share link deleted"}
