
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from dropshare import crud, schemas
from dropshare.core.errors import DenialReason, TokenCollisionError
from dropshare.core.security import verify_password
from dropshare.models.share import Permission
from dropshare.services.share_policy import Operation, can_access


def fixed_tokens(*tokens):
    source = iter(tokens)
    return lambda: next(source)


class TestCreateWithOwner:
    def test_defaults(self, make_user, make_file, make_link):
        owner = make_user()
        link = make_link(owner, file=make_file(owner))
        assert link.is_active
        assert link.permissions is Permission.READ
        assert link.download_count == 0
        assert link.access_count == 0
        assert link.max_downloads is None
        assert link.ip_allowlist == []
        assert link.target_type == "file"
        assert len(link.token) >= 43

    def test_password_is_stored_hashed(self, make_user, make_file, make_link):
        owner = make_user()
        link = make_link(owner, file=make_file(owner), password="hunter22")
        assert link.has_password
        assert link.password_hash != "hunter22"
        assert verify_password("hunter22", link.password_hash)

    def test_needs_exactly_one_target(self, db, make_user, make_file, make_folder):
        owner = make_user()
        file, folder = make_file(owner), make_folder(owner)
        with pytest.raises(ValueError):
            crud.share.create_with_owner(db, obj_in=schemas.ShareLinkCreate(), user_id=owner.id)
        with pytest.raises(ValueError):
            crud.share.create_with_owner(
                db, obj_in=schemas.ShareLinkCreate(), user_id=owner.id, file_id=file.id, folder_id=folder.id
            )

    def test_collision_is_retried_once(self, make_user, make_file, make_link):
        owner = make_user()
        file = make_file(owner)
        make_link(owner, file=file, token_factory=fixed_tokens("taken"))

        link = make_link(owner, file=file, token_factory=fixed_tokens("taken", "fresh"))
        assert link.token == "fresh"

    def test_second_collision_raises(self, make_user, make_file, make_link):
        owner = make_user()
        file = make_file(owner)
        make_link(owner, file=file, token_factory=fixed_tokens("taken"))

        with pytest.raises(TokenCollisionError):
            make_link(owner, file=file, token_factory=lambda: "taken")

    def test_tokens_are_distinct_across_links(self, make_user, make_file, make_link):
        owner = make_user()
        file = make_file(owner)
        tokens = {make_link(owner, file=file).token for _ in range(20)}
        assert len(tokens) == 20


class TestCreateValidation:
    def test_short_password_rejected(self):
        with pytest.raises(ValidationError):
            schemas.ShareLinkCreate(password="ab")

    def test_max_downloads_must_be_positive(self):
        with pytest.raises(ValidationError):
            schemas.ShareLinkCreate(max_downloads=0)

    def test_allowlist_entries_are_normalised(self):
        link_in = schemas.ShareLinkCreate(ip_allowlist=[" 2001:0db8::0001 ", "10.0.0.1"])
        assert link_in.ip_allowlist == ["2001:db8::1", "10.0.0.1"]

    def test_allowlist_rejects_garbage(self):
        with pytest.raises(ValidationError):
            schemas.ShareLinkCreate(ip_allowlist=["not-an-ip"])

    def test_offset_expiry_is_stored_as_utc(self):
        expiry = datetime(2026, 3, 1, 17, 0, tzinfo=timezone(timedelta(hours=5)))
        link_in = schemas.ShareLinkCreate(expires_at=expiry)
        assert link_in.expires_at == datetime(2026, 3, 1, 12, 0)
        assert link_in.expires_at.tzinfo is None

    def test_naive_expiry_is_kept(self):
        assert schemas.ShareLinkCreate(expires_at=datetime(2026, 3, 1, 12, 0)).expires_at == datetime(2026, 3, 1, 12, 0)


class TestLifecycle:
    def test_revoke(self, db, make_user, make_file, make_link):
        owner = make_user()
        link = crud.share.revoke(db, link=make_link(owner, file=make_file(owner)))
        assert not link.is_active
        assert crud.share.get_by_token(db, token=link.token) is not None

    def test_hard_deleting_target_removes_links(self, db, make_user, make_file, make_link):
        owner = make_user()
        file = make_file(owner)
        token = make_link(owner, file=file).token

        crud.file.permanent_remove(db, file=file)
        db.expire_all()
        assert crud.share.get_by_token(db, token=token) is None

    def test_past_offset_expiry_is_expired_after_reload(self, db, make_user, make_file, make_link):
        owner = make_user()
        plus_five = timezone(timedelta(hours=5))
        expiry = (datetime.now(timezone.utc) - timedelta(hours=1)).astimezone(plus_five)
        link = make_link(owner, file=make_file(owner), expires_at=expiry)

        db.expire_all()
        link = crud.share.get_by_token(db, token=link.token)
        assert link.expires_at < datetime.utcnow()
        assert can_access(link, Operation.DOWNLOAD).reason is DenialReason.EXPIRED

    def test_owner_listing(self, db, make_user, make_file, make_link):
        owner, other = make_user(), make_user()
        make_link(owner, file=make_file(owner))
        make_link(other, file=make_file(other))
        links = crud.share.get_multi_by_owner(db, user_id=owner.id)
        assert [l.user_id for l in links] == [owner.id]
