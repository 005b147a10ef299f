"""
Share-link gate.

``can_access`` decides whether one request may use a link. It is a pure
function of the link's current state and the request inputs: it performs no
I/O and never mutates the link. Callers record the access afterwards through
:mod:`dropshare.services.access_recorder`.

Checks run in a fixed order and the first failing one wins, so a client
always learns the most fundamental problem first (a dead link before a
missing password):

1. revoked
2. expired
3. download limit reached (download-type operations only)
4. password missing / wrong (all operations except ``PREVIEW``)
5. permission tier too low; admin-tier operations also need the creator
6. client address outside the link's allowlist
"""
import enum
import ipaddress
from datetime import datetime
from typing import Optional

from dropshare.core.errors import ALLOW, Decision, DenialReason
from dropshare.core.security import verify_password
from dropshare.models.share import Permission, ShareLink


class Operation(enum.Enum):
    # value: (required tier, counts against max_downloads, password gated)
    PREVIEW = (Permission.READ, False, False)
    BROWSE = (Permission.READ, False, True)
    DOWNLOAD = (Permission.READ, True, True)
    ARCHIVE = (Permission.WRITE, True, True)
    MANAGE = (Permission.ADMIN, False, True)

    @property
    def required_tier(self) -> Permission:
        return self.value[0]

    @property
    def is_download(self) -> bool:
        return self.value[1]

    @property
    def password_gated(self) -> bool:
        return self.value[2]


def verify_link_password(link: ShareLink, password: Optional[str]) -> bool:
    if not link.password_hash or not password:
        return False
    return verify_password(password, link.password_hash)


def _ip_allowed(allowlist, client_ip: Optional[str]) -> bool:
    if not allowlist:
        return True
    if not client_ip:
        return False
    try:
        candidate = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(candidate == ipaddress.ip_address(entry) for entry in allowlist)


def can_access(
    link: ShareLink,
    operation: Operation,
    supplied_password: Optional[str] = None,
    requester_id: Optional[int] = None,
    client_ip: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Decision:
    now = now or datetime.utcnow()

    if not link.is_active:
        return Decision.deny(DenialReason.REVOKED)

    if link.expires_at is not None and now > link.expires_at:
        return Decision.deny(DenialReason.EXPIRED)

    if (
        operation.is_download
        and link.max_downloads is not None
        and link.download_count >= link.max_downloads
    ):
        return Decision.deny(DenialReason.QUOTA_EXHAUSTED)

    if operation.password_gated and link.password_hash:
        if not supplied_password:
            return Decision.deny(DenialReason.PASSWORD_REQUIRED)
        if not verify_password(supplied_password, link.password_hash):
            return Decision.deny(DenialReason.PASSWORD_INVALID)

    if not link.permissions.allows(operation.required_tier):
        return Decision.deny(DenialReason.INSUFFICIENT_PERMISSION)
    # Holding an admin-tier capability is not enough on its own
    if operation.required_tier is Permission.ADMIN and requester_id != link.user_id:
        return Decision.deny(DenialReason.INSUFFICIENT_PERMISSION)

    if not _ip_allowed(link.ip_allowlist, client_ip):
        return Decision.deny(DenialReason.IP_NOT_ALLOWED)

    return ALLOW
