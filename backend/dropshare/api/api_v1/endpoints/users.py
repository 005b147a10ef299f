from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from dropshare import crud, models, schemas
from dropshare.api import deps
from dropshare.core.security import verify_password
from dropshare.models.log import LogAction, LogCategory
from dropshare.services import quota

router = APIRouter()

@router.post("/", response_model=schemas.User)
def create_user(
    *,
    db: Session = Depends(deps.get_db),
    user_in: schemas.UserCreate,
) -> Any:
    """
    Create new user. The very first account becomes an admin.
    """
    if crud.user.get_by_username(db, username=user_in.username):
        raise HTTPException(
            status_code=400,
            detail="The user with this username already exists in the system.",
        )
    if crud.user.get_by_email(db, email=user_in.email):
        raise HTTPException(
            status_code=400,
            detail="The user with this email already exists in the system.",
        )

    is_first_user = db.query(models.User).count() == 0
    user = crud.user.create(db, obj_in=user_in, is_admin=is_first_user)

    crud.log.record(
        db,
        action=LogAction.USER_REGISTER,
        category=LogCategory.AUTHENTICATION,
        description=f"User {user.username} registered",
        user_id=user.id,
    )
    return user

@router.get("/me", response_model=schemas.User)
def read_user_me(
    current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    """
    Get current user.
    """
    return current_user

@router.get("/me/usage", response_model=schemas.QuotaSnapshot)
def read_user_me_usage(
    db: Session = Depends(deps.get_db),
    current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    return quota.get_snapshot(db, current_user)

@router.put("/profile", response_model=schemas.User)
def update_profile(
    *,
    db: Session = Depends(deps.get_db),
    profile_in: schemas.ProfileUpdate,
    current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    """
    Update the current user's display name, bio or preferences.
    """
    user = crud.user.update_profile(db, user=current_user, obj_in=profile_in)
    crud.log.record(
        db,
        action=LogAction.PROFILE_UPDATE,
        category=LogCategory.USER_MANAGEMENT,
        description="Updated user profile",
        user_id=user.id,
    )
    return user

@router.post("/change-password")
def change_password(
    *,
    db: Session = Depends(deps.get_db),
    password_in: schemas.PasswordChange,
    current_user: models.User = Depends(deps.get_current_user),
) -> Any:
    if not verify_password(password_in.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    crud.user.update(db, db_obj=current_user, obj_in={"password": password_in.new_password})
    crud.log.record(
        db,
        action=LogAction.PASSWORD_CHANGE,
        category=LogCategory.SECURITY,
        description="Changed password",
        user_id=current_user.id,
    )
    return {"message": "Password changed successfully"}

@router.get("/", response_model=List[schemas.User])
def read_users(
    db: Session = Depends(deps.get_db),
    skip: int = 0,
    limit: int = 100,
    current_user: models.User = Depends(deps.get_current_admin),
) -> Any:
    """
    Retrieve users. (Admin only)
    """
    return crud.user.get_multi(db, skip=skip, limit=limit)

@router.put("/{user_id}", response_model=schemas.User)
def update_user(
    *,
    db: Session = Depends(deps.get_db),
    user_id: int,
    user_in: schemas.UserUpdate,
    current_user: models.User = Depends(deps.get_current_admin),
) -> Any:
    """
    Update a user's storage limit, admin flag or active flag. (Admin only)
    """
    user = crud.user.get(db, id=user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user = crud.user.update(db, db_obj=user, obj_in=user_in)
    crud.log.record(
        db,
        action=LogAction.USER_UPDATE,
        category=LogCategory.USER_MANAGEMENT,
        description=f"Admin {current_user.username} updated user {user.username}",
        user_id=current_user.id,
        resource_id=user.id,
    )
    return user
