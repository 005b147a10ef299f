from fastapi import APIRouter

from dropshare.api.api_v1.endpoints import login, users, files, folders, shares

api_router = APIRouter()
api_router.include_router(login.router, prefix="/login", tags=["login"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(folders.router, prefix="/folders", tags=["folders"])
api_router.include_router(shares.router, prefix="/shares", tags=["shares"])
