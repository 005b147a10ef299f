from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from dropshare import crud, models, schemas
from dropshare.api import deps
from dropshare.api.helpers import link_out
from dropshare.models.log import LogAction
from dropshare.utils.naming import is_filename_valid

router = APIRouter()

ILLEGAL_NAME_DETAIL = 'Folder name contains illegal characters: < > : " / \\ | ? *'


def _get_owned_folder(db: Session, folder_id: int, user: models.User) -> models.Folder:
    folder = crud.folder.get_owned(db, id=folder_id, user_id=user.id)
    if not folder:
        raise HTTPException(status_code=404, detail="Folder not found")
    return folder


@router.post("", response_model=schemas.Folder)
def create_folder(
        *,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        folder_in: schemas.FolderCreate,
) -> Any:
    if not is_filename_valid(folder_in.name):
        raise HTTPException(status_code=400, detail=ILLEGAL_NAME_DETAIL)
    if folder_in.parent_id is not None:
        _get_owned_folder(db, folder_in.parent_id, current_user)

    folder = crud.folder.create_with_user(db, obj_in=folder_in, user_id=current_user.id)
    crud.log.record(
        db,
        action=LogAction.FOLDER_CREATE,
        description=f"Created folder {folder.name}",
        user_id=current_user.id,
        resource_id=folder.id,
    )
    return folder


@router.get("", response_model=List[schemas.Folder])
def read_folders(
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        parent_id: Optional[int] = None,
) -> Any:
    return crud.folder.get_children(db, parent_id=parent_id, user_id=current_user.id)


@router.get("/tree/structure", response_model=List[schemas.FolderTreeNode])
def read_folder_tree(
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    """
    Every active folder of the caller nested under its parent. Folders whose
    parent is not active are left out.
    """
    folders = crud.folder.get_all_active(db, user_id=current_user.id)
    nodes = {f.id: {"id": f.id, "name": f.name, "parent_id": f.parent_id, "children": []} for f in folders}

    roots = []
    for folder in folders:
        node = nodes[folder.id]
        if folder.parent_id is None:
            roots.append(node)
        elif folder.parent_id in nodes:
            nodes[folder.parent_id]["children"].append(node)
    return roots


@router.get("/{folder_id}", response_model=schemas.Folder)
def read_folder(
        folder_id: int,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    return _get_owned_folder(db, folder_id, current_user)


@router.put("/{folder_id}", response_model=schemas.Folder)
def update_folder(
        *,
        folder_id: int,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        folder_in: schemas.FolderUpdate,
) -> Any:
    """
    Rename a folder, change its description or move it under another folder
    (``parent_id: null`` moves it to the root).
    """
    if folder_in.name is not None and not is_filename_valid(folder_in.name):
        raise HTTPException(status_code=400, detail=ILLEGAL_NAME_DETAIL)

    folder = _get_owned_folder(db, folder_id, current_user)
    if folder_in.parent_id is not None:
        _get_owned_folder(db, folder_in.parent_id, current_user)

    updated = crud.folder.update_with_move(db, folder=folder, obj_in=folder_in)
    if updated is None:
        raise HTTPException(status_code=400, detail="Cannot move a folder into itself or one of its subfolders")

    crud.log.record(
        db,
        action=LogAction.FOLDER_UPDATE,
        description=f"Updated folder {updated.name}",
        user_id=current_user.id,
        resource_id=updated.id,
    )
    return updated


@router.get("/{folder_id}/contents", response_model=schemas.FolderContents)
def read_folder_contents(
        folder_id: int,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    folder = _get_owned_folder(db, folder_id, current_user)
    return {
        "folder": folder,
        "files": crud.file.get_active_in_folder(db, folder_id=folder.id),
        "subfolders": crud.folder.get_children(db, parent_id=folder.id, user_id=current_user.id),
    }


@router.delete("/{folder_id}", response_model=schemas.Folder)
def delete_folder(
        folder_id: int,
        request: Request,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    """
    Move a folder and everything beneath it to the trash.
    """
    folder = crud.folder.soft_remove(db, folder=_get_owned_folder(db, folder_id, current_user))
    crud.log.record(
        db,
        action=LogAction.FOLDER_DELETE,
        description=f"Moved folder {folder.name} to trash",
        user_id=current_user.id,
        resource_id=folder.id,
        ip_address=deps.get_client_ip(request),
    )
    return folder


@router.post("/{folder_id}/share", response_model=schemas.ShareLink)
def share_folder(
        *,
        folder_id: int,
        request: Request,
        db: Session = Depends(deps.get_db),
        current_user: models.User = Depends(deps.get_current_user),
        share_in: schemas.ShareLinkCreate,
) -> Any:
    folder = _get_owned_folder(db, folder_id, current_user)
    link = crud.share.create_with_owner(db, obj_in=share_in, user_id=current_user.id, folder_id=folder.id)
    crud.log.record(
        db,
        action=LogAction.FOLDER_SHARE,
        description=f"Shared folder {folder.name} ({link.permissions.value})",
        user_id=current_user.id,
        resource_id=folder.id,
        ip_address=deps.get_client_ip(request),
    )
    return link_out(link)
