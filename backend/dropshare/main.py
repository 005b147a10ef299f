import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from dropshare.api.api_v1.api import api_router
from dropshare.api.helpers import denial_detail
from dropshare.core.config import settings
from dropshare.core.errors import DenialReason, ObjectNotFound, StorageBackendFailure, TokenCollisionError
from dropshare.db.base import Base
from dropshare.db.session import engine

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables for development (in production use Alembic)
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

@app.exception_handler(ObjectNotFound)
async def object_not_found_handler(request: Request, exc: ObjectNotFound):
    logger.warning(f"Stored object missing for {request.url.path}: {exc.key}")
    return JSONResponse(status_code=404, content={"detail": denial_detail(DenialReason.NOT_FOUND)})

@app.exception_handler(StorageBackendFailure)
async def storage_failure_handler(request: Request, exc: StorageBackendFailure):
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": denial_detail(DenialReason.STORAGE_BACKEND_FAILURE)},
    )

@app.exception_handler(TokenCollisionError)
async def token_collision_handler(request: Request, exc: TokenCollisionError):
    logger.error(f"Share token generation failed: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Could not create share link, try again"})

# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error"},
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"message": "Validation Error", "detail": jsonable_errors(exc)},
    )

def jsonable_errors(exc: RequestValidationError):
    # ctx may carry the raw ValueError raised by a validator
    return jsonable_encoder(exc.errors(), custom_encoder={Exception: str})

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8899)
