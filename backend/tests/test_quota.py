from dropshare import crud
from dropshare.core.errors import ALLOW, DenialReason
from dropshare.models.subscription import PlanName, Subscription, SubscriptionStatus
from dropshare.services import quota

MB = 1024 * 1024


def subscribe(db, user, status, storage_limit):
    subscription = Subscription(
        user_id=user.id, plan_name=PlanName.PREMIUM, status=status, storage_limit=storage_limit
    )
    db.add(subscription)
    db.commit()
    db.refresh(user)
    return subscription


class TestUsage:
    def test_counts_only_active_files(self, db, make_user, make_file):
        user = make_user()
        make_file(user, name="a.bin", content=b"x" * 100)
        trashed = make_file(user, name="b.bin", content=b"y" * 50)
        crud.file.soft_remove(db, file=trashed)

        assert quota.get_usage(db, user.id) == 100

    def test_other_users_files_do_not_count(self, db, make_user, make_file):
        user, other = make_user(), make_user()
        make_file(other, content=b"z" * 500)
        assert quota.get_usage(db, user.id) == 0


class TestEffectiveLimit:
    def test_account_limit_without_subscription(self, db, make_user):
        user = make_user(storage_limit=5 * MB)
        assert quota.get_effective_limit(user) == 5 * MB

    def test_active_subscription_overrides(self, db, make_user):
        user = make_user(storage_limit=5 * MB)
        subscribe(db, user, SubscriptionStatus.ACTIVE, 50 * MB)
        assert quota.get_effective_limit(user) == 50 * MB

    def test_trialing_subscription_overrides(self, db, make_user):
        user = make_user(storage_limit=5 * MB)
        subscribe(db, user, SubscriptionStatus.TRIALING, 20 * MB)
        assert quota.get_effective_limit(user) == 20 * MB

    def test_lapsed_subscription_falls_back_to_account(self, db, make_user):
        user = make_user(storage_limit=5 * MB)
        subscribe(db, user, SubscriptionStatus.CANCELED, 50 * MB)
        assert quota.get_effective_limit(user) == 5 * MB


class TestCheckQuota:
    def test_upload_that_exactly_fills_the_limit_is_allowed(self, db, make_user, make_file):
        user = make_user(storage_limit=1000)
        make_file(user, content=b"a" * 400)
        assert quota.check_quota(db, user.id, 600) == ALLOW

    def test_one_byte_over_is_denied(self, db, make_user, make_file):
        user = make_user(storage_limit=1000)
        make_file(user, content=b"a" * 400)
        assert quota.check_quota(db, user.id, 601).reason is DenialReason.STORAGE_LIMIT_EXCEEDED

    def test_trashed_files_free_space(self, db, make_user, make_file):
        user = make_user(storage_limit=1000)
        big = make_file(user, content=b"a" * 900)
        assert not quota.check_quota(db, user.id, 200)
        crud.file.soft_remove(db, file=big)
        assert quota.check_quota(db, user.id, 200)

    def test_unknown_user(self, db):
        assert quota.check_quota(db, 12345, 1).reason is DenialReason.NOT_FOUND


class TestSnapshot:
    def test_snapshot_fields(self, db, make_user, make_file):
        user = make_user(storage_limit=1000)
        make_file(user, content=b"a" * 250)
        snapshot = quota.get_snapshot(db, user)
        assert snapshot.used == 250
        assert snapshot.limit == 1000
        assert snapshot.remaining == 750
        assert snapshot.percentage == 25
        assert snapshot.source == "account"

    def test_snapshot_reports_subscription_source(self, db, make_user):
        user = make_user(storage_limit=1000)
        subscribe(db, user, SubscriptionStatus.ACTIVE, 4000)
        snapshot = quota.get_snapshot(db, user)
        assert snapshot.limit == 4000
        assert snapshot.source == "subscription"

    def test_zero_limit_reads_as_full(self, db, make_user):
        user = make_user(storage_limit=0)
        snapshot = quota.get_snapshot(db, user)
        assert snapshot.percentage == 100
        assert snapshot.remaining == 0
