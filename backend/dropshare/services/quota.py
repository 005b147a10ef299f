import logging

from sqlalchemy.orm import Session

from dropshare import crud
from dropshare.core.errors import ALLOW, Decision, DenialReason
from dropshare.models.user import User
from dropshare.schemas.user import QuotaSnapshot

logger = logging.getLogger(__name__)


def get_usage(db: Session, user_id: int) -> int:
    """Live total of the user's non-deleted file sizes."""
    return crud.file.sum_active_size(db, user_id=user_id)


def _limit_and_source(user: User):
    subscription = user.subscription
    if subscription is not None and subscription.is_active:
        return subscription.storage_limit, "subscription"
    return user.storage_limit, "account"


def get_effective_limit(user: User) -> int:
    """Subscription limit while the subscription is active or trialing, else the account default."""
    return _limit_and_source(user)[0]


def get_snapshot(db: Session, user: User) -> QuotaSnapshot:
    used = get_usage(db, user.id)
    limit, source = _limit_and_source(user)
    return QuotaSnapshot(
        used=used,
        limit=limit,
        remaining=max(limit - used, 0),
        percentage=round(used * 100 / limit) if limit else 100,
        source=source,
    )


def check_quota(db: Session, user_id: int, incoming_bytes: int) -> Decision:
    """
    Deny when the upload would push the user past their limit.

    Not serialized against concurrent uploads from the same user: two
    uploads can both pass and overshoot the limit briefly.
    """
    user = crud.user.get(db, id=user_id)
    if user is None:
        return Decision.deny(DenialReason.NOT_FOUND)

    used = get_usage(db, user_id)
    limit = get_effective_limit(user)
    if used + incoming_bytes > limit:
        logger.info(
            "Quota denied for user %s: used=%d incoming=%d limit=%d", user_id, used, incoming_bytes, limit
        )
        return Decision.deny(DenialReason.STORAGE_LIMIT_EXCEEDED)
    return ALLOW
