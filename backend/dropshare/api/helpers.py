from typing import Any, Dict, Iterator
from urllib.parse import quote

from fastapi import HTTPException
from fastapi.responses import StreamingResponse

from dropshare import models
from dropshare.core.config import settings
from dropshare.core.errors import DENIAL_MESSAGES, DENIAL_STATUS_CODES, Decision, DenialReason


def denial_detail(reason: DenialReason) -> Dict[str, str]:
    return {"reason": reason.value, "message": DENIAL_MESSAGES[reason]}


def denial_exception(reason: DenialReason) -> HTTPException:
    return HTTPException(status_code=DENIAL_STATUS_CODES[reason], detail=denial_detail(reason))


def raise_for_decision(decision: Decision) -> None:
    if not decision.allowed:
        raise denial_exception(decision.reason)


def attachment_headers(filename: str, size: int = None) -> Dict[str, str]:
    encoded_filename = quote(filename)
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{encoded_filename}"}
    if size is not None:
        headers["Content-Length"] = str(size)
    return headers


def stream_object(chunks: Iterator[bytes], filename: str, media_type: str, size: int = None, background=None):
    return StreamingResponse(
        chunks,
        media_type=media_type or "application/octet-stream",
        headers=attachment_headers(filename, size),
        background=background,
    )


def share_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/share/{token}"


def link_out(link: models.ShareLink) -> Dict[str, Any]:
    """Owner view of a link, including its public URL."""
    if link.file is not None:
        target_name = link.file.original_name
    elif link.folder is not None:
        target_name = link.folder.name
    else:
        target_name = None
    return {
        "id": link.id,
        "token": link.token,
        "url": share_url(link.token),
        "target_type": link.target_type,
        "file_id": link.file_id,
        "folder_id": link.folder_id,
        "target_name": target_name,
        "expires_at": link.expires_at,
        "has_password": link.has_password,
        "max_downloads": link.max_downloads,
        "download_count": link.download_count,
        "access_count": link.access_count,
        "last_accessed": link.last_accessed,
        "permissions": link.permissions,
        "is_active": link.is_active,
        "ip_allowlist": list(link.ip_allowlist or []),
        "created_at": link.created_at,
    }
