"""
Error taxonomy.

Expected outcomes of the share-link gate and the quota guard are returned as
``Decision`` values carrying a ``DenialReason``; only infrastructure faults
are raised as exceptions. The HTTP layer turns both into a response whose
``detail`` always names the specific reason.
"""
import enum
from typing import Optional


class DenialReason(str, enum.Enum):
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    QUOTA_EXHAUSTED = "quota_exhausted"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_INVALID = "password_invalid"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    IP_NOT_ALLOWED = "ip_not_allowed"
    STORAGE_LIMIT_EXCEEDED = "storage_limit_exceeded"
    EMPTY_ARCHIVE = "empty_archive"
    STORAGE_BACKEND_FAILURE = "storage_backend_failure"


DENIAL_STATUS_CODES = {
    DenialReason.NOT_FOUND: 404,
    DenialReason.REVOKED: 410,
    DenialReason.EXPIRED: 410,
    DenialReason.QUOTA_EXHAUSTED: 410,
    DenialReason.PASSWORD_REQUIRED: 401,
    DenialReason.PASSWORD_INVALID: 401,
    DenialReason.INSUFFICIENT_PERMISSION: 403,
    DenialReason.IP_NOT_ALLOWED: 403,
    DenialReason.STORAGE_LIMIT_EXCEEDED: 413,
    DenialReason.EMPTY_ARCHIVE: 404,
    DenialReason.STORAGE_BACKEND_FAILURE: 503,
}

DENIAL_MESSAGES = {
    DenialReason.NOT_FOUND: "Share link not found",
    DenialReason.REVOKED: "Share link has been revoked",
    DenialReason.EXPIRED: "Share link has expired",
    DenialReason.QUOTA_EXHAUSTED: "Share link has reached its download limit",
    DenialReason.PASSWORD_REQUIRED: "Password required",
    DenialReason.PASSWORD_INVALID: "Invalid password",
    DenialReason.INSUFFICIENT_PERMISSION: "Insufficient permissions",
    DenialReason.IP_NOT_ALLOWED: "Access from this address is not allowed",
    DenialReason.STORAGE_LIMIT_EXCEEDED: "Storage limit exceeded",
    DenialReason.EMPTY_ARCHIVE: "No files found in folder",
    DenialReason.STORAGE_BACKEND_FAILURE: "Storage backend unavailable",
}


class Decision:
    """Outcome of a gate check: allowed, or denied with a reason."""

    __slots__ = ("reason",)

    def __init__(self, reason: Optional[DenialReason] = None):
        self.reason = reason

    @classmethod
    def allow(cls) -> "Decision":
        return cls()

    @classmethod
    def deny(cls, reason: DenialReason) -> "Decision":
        return cls(reason)

    @property
    def allowed(self) -> bool:
        return self.reason is None

    def __bool__(self) -> bool:
        return self.allowed

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Decision):
            return self.reason == other.reason
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.reason)

    def __repr__(self) -> str:
        if self.allowed:
            return "Allow"
        return f"Deny({self.reason.name})"


ALLOW = Decision.allow()


class DropShareError(Exception):
    """Base class for infrastructure faults."""


class StorageError(DropShareError):
    pass


class StorageBackendFailure(StorageError):
    """The object store could not complete a read, write or delete."""


class ObjectNotFound(StorageError):
    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class TokenCollisionError(DropShareError):
    """A freshly generated share token collided twice in a row."""
