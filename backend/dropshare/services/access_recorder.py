"""
Counter mutations for share links.

Both operations are single UPDATE statements against the persisted row; the
in-memory ``link`` is refreshed afterwards so callers see the stored values.
"""
from sqlalchemy.orm import Session

from dropshare import crud
from dropshare.models.share import ShareLink


def record_access(db: Session, link: ShareLink) -> None:
    crud.share.increment_access(db, link_id=link.id)
    db.refresh(link)


def record_download(db: Session, link: ShareLink) -> bool:
    """
    Count one download against the link's ceiling.

    Returns False when the ceiling was already reached by the time the update
    ran, which happens when concurrent requests race past the policy check.
    """
    accepted = crud.share.increment_download_if_below_limit(db, link_id=link.id)
    db.refresh(link)
    return accepted
