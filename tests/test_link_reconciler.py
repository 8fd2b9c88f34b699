"""
LinkReconciler 테스트.

MarketplaceLink / SyncStatus 두 저장 구조의 정합성, 멱등성, 수동 링크 관리를 확인합니다.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from marketsync.models import LinkStatus, MarketplaceLink, SyncLog, SyncStatus, SyncStatusValue
from marketsync.services.link_reconciler import LinkReconciler, as_utc, latest_link
from marketsync.services.results import ErrorKind


def _logs(session, action):
    return session.scalars(select(SyncLog).where(SyncLog.action == action)).all()


@pytest.fixture
def reconciler(test_session):
    return LinkReconciler(test_session)


@pytest.fixture
def product(product_factory):
    return product_factory(colors=("Red", "Blue"))


class TestStatusView:

    def test_nothing_recorded(self, reconciler, product, shopify_account):
        view = reconciler.status_view(product, shopify_account)
        assert view.status == SyncStatusValue.NOT_SYNCED
        assert view.source == "none"
        assert view.external_product_id is None

    def test_legacy_status_only(self, test_session, reconciler, product, shopify_account):
        test_session.add(SyncStatus(
            product_id=product.id,
            sync_account_id=shopify_account.id,
            external_product_id="555",
            sync_status="synced",
            health_score=80,
            meta={},
        ))
        test_session.flush()

        view = reconciler.status_view(product, shopify_account)
        assert view.source == "sync_status"
        assert view.is_synced
        assert view.external_product_id == "555"
        assert view.health_score == 80

    def test_latest_link_wins(self, test_session, reconciler, product, shopify_account):
        now = datetime.now(timezone.utc)
        for ext_id, status, linked_at in [
            ("old", "linked", now - timedelta(days=2)),
            ("new", "failed", now),
            ("never", "pending", None),
        ]:
            test_session.add(MarketplaceLink(
                owner_kind="product",
                owner_id=product.id,
                product_id=product.id,
                sync_account_id=shopify_account.id,
                external_product_id=ext_id,
                link_status=status,
                linked_at=linked_at,
                marketplace_data={},
            ))
        test_session.flush()

        view = reconciler.status_view(product, shopify_account)
        assert view.source == "marketplace_link"
        assert view.status == SyncStatusValue.FAILED
        assert view.external_product_id == "new"
        assert len(view.links) == 3

    def test_latest_link_empty(self):
        assert latest_link([]) is None


class TestSynchronize:

    def test_consistent_after_link_is_noop(self, test_session, reconciler, product, shopify_account):
        reconciler.link_product(product, shopify_account, "gid://shopify/Product/42", actor="alice")

        outcome = reconciler.synchronize(product, shopify_account)
        assert outcome.updated is False
        assert outcome.message == "No synchronization needed - systems are already consistent"
        assert _logs(test_session, "sync_systems") == []

    def test_status_updated_from_link_once(self, test_session, reconciler, product, shopify_account):
        reconciler.link_product(product, shopify_account, "42")
        status = reconciler.get_status(product.id, shopify_account.id)
        status.sync_status = SyncStatusValue.PENDING.value
        status.external_product_id = "stale"
        test_session.flush()

        first = reconciler.synchronize(product, shopify_account, actor="bob")
        second = reconciler.synchronize(product, shopify_account, actor="bob")

        assert first.updated is True
        assert first.message == "System status synchronized from MarketplaceLink"
        assert second.updated is False
        status = reconciler.get_status(product.id, shopify_account.id)
        assert status.sync_status == "synced"
        assert status.external_product_id == "42"
        assert len(_logs(test_session, "sync_systems")) == 1

    def test_link_materialized_from_legacy_status(self, test_session, reconciler, product, shopify_account):
        synced_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        test_session.add(SyncStatus(
            product_id=product.id,
            sync_account_id=shopify_account.id,
            external_product_id="777",
            external_variant_id="v-1",
            sync_status="synced",
            last_synced_at=synced_at,
            meta={},
        ))
        test_session.flush()

        outcome = reconciler.synchronize(product, shopify_account)
        assert outcome.updated is True
        assert outcome.message == "System status synchronized from SyncStatus"

        links = reconciler.links_for(product.id, shopify_account.id)
        assert len(links) == 1
        assert links[0].link_status == LinkStatus.LINKED.value
        assert links[0].external_product_id == "777"
        assert as_utc(links[0].linked_at) == synced_at

        # 반복 호출은 추가 쓰기 없음
        assert reconciler.synchronize(product, shopify_account).updated is False
        assert len(reconciler.links_for(product.id, shopify_account.id)) == 1
        assert len(_logs(test_session, "sync_systems")) == 1

    def test_not_synced_legacy_status_becomes_pending(self, test_session, reconciler, product, shopify_account):
        test_session.add(SyncStatus(
            product_id=product.id,
            sync_account_id=shopify_account.id,
            external_product_id="888",
            sync_status="not_synced",
            meta={},
        ))
        test_session.flush()

        reconciler.synchronize(product, shopify_account)
        link = reconciler.links_for(product.id, shopify_account.id)[0]
        status = reconciler.get_status(product.id, shopify_account.id)
        assert link.link_status == "pending"
        assert status.sync_status == "pending"
        assert reconciler.synchronize(product, shopify_account).updated is False

    def test_nothing_to_do_without_external_id(self, reconciler, product, shopify_account):
        outcome = reconciler.synchronize(product, shopify_account)
        assert outcome.updated is False
        assert outcome.sync_status_id is None


class TestProductLinks:

    def test_link_product(self, test_session, reconciler, product, shopify_account):
        result = reconciler.link_product(product, shopify_account, " 42 ", actor="alice")
        assert result.success
        assert result.data["external_product_id"] == "42"

        view = reconciler.status_view(product, shopify_account)
        assert view.is_synced
        assert view.external_product_id == "42"
        assert view.links[0]["linked_by"] == "alice"
        assert len(_logs(test_session, "link")) == 1

    def test_link_requires_external_id(self, reconciler, product, shopify_account):
        result = reconciler.link_product(product, shopify_account, "  ")
        assert not result.success
        assert result.error_kind == ErrorKind.VALIDATION

    def test_unlink_product(self, test_session, reconciler, product, shopify_account):
        reconciler.link_product(product, shopify_account, "42")
        reconciler.link_color(product, shopify_account, "Red", "43")

        result = reconciler.unlink_product(product, shopify_account, actor="carol")
        assert result.success
        assert result.data["unlinked_count"] == 3  # 링크 2 + SyncStatus 1
        assert set(result.data["external_ids"]) == {"42", "43"}

        status = reconciler.get_status(product.id, shopify_account.id)
        assert status.sync_status == "not_synced"
        assert status.external_product_id is None
        assert status.meta["previous_external_id"] in {"42", "43"}

        for link in reconciler.links_for(product.id, shopify_account.id):
            assert link.link_status == "unlinked"
            assert link.linked_at is None
            assert link.marketplace_data["unlinked_by"] == "carol"

        view = reconciler.status_view(product, shopify_account)
        assert view.status == SyncStatusValue.NOT_SYNCED
        assert view.external_product_id is None
        assert view.links == []
        assert len(_logs(test_session, "unlink")) == 1

    def test_unlink_nothing(self, test_session, reconciler, product, shopify_account):
        result = reconciler.unlink_product(product, shopify_account)
        assert result.success
        assert result.data["unlinked_count"] == 0
        assert _logs(test_session, "unlink") == []


class TestColorLinks:

    def test_link_color(self, test_session, reconciler, product, shopify_account):
        result = reconciler.link_color(product, shopify_account, "Red", "100")
        assert result.success
        assert result.data["created"] is True

        links = reconciler.color_links(product, shopify_account)
        assert list(links) == ["Red"]
        assert links["Red"].external_product_id == "100"
        assert len(_logs(test_session, "color_link")) == 1

    def test_link_same_color_twice_is_noop(self, test_session, reconciler, product, shopify_account):
        reconciler.link_color(product, shopify_account, "Red", "100")
        again = reconciler.link_color(product, shopify_account, "Red", "100")
        assert again.data["created"] is False
        assert len(reconciler.links_for(product.id, shopify_account.id)) == 1

    def test_relink_color_retires_previous(self, reconciler, product, shopify_account):
        reconciler.link_color(product, shopify_account, "Red", "100")
        result = reconciler.link_color(product, shopify_account, "Red", "200")
        assert result.data["replaced"] == 1

        active = [link for link in reconciler.links_for(product.id, shopify_account.id) if link.is_active]
        assert len(active) == 1
        assert active[0].external_product_id == "200"

    def test_unlink_color(self, test_session, reconciler, product, shopify_account):
        reconciler.link_color(product, shopify_account, "Red", "100")
        reconciler.link_color(product, shopify_account, "Blue", "101")

        result = reconciler.unlink_color(product, shopify_account, "Red")
        assert result.success
        assert list(reconciler.color_links(product, shopify_account)) == ["Blue"]
        assert len(_logs(test_session, "color_unlink")) == 1

    def test_unlink_missing_color(self, reconciler, product, shopify_account):
        result = reconciler.unlink_color(product, shopify_account, "Green")
        assert not result.success
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_update_color_link(self, reconciler, product, shopify_account):
        reconciler.link_color(product, shopify_account, "Red", "100")
        result = reconciler.update_color_link(product, shopify_account, "Red", "300", actor="dave")
        assert result.data["previous_external_id"] == "100"

        details = reconciler.color_link_details(product, shopify_account, "Red")
        assert details["external_product_id"] == "300"
        assert details["marketplace_data"]["previous_external_id"] == "100"
        assert details["linked_by"] == "dave"

    def test_refresh_requires_shopify(self, test_session, reconciler, product, shopify_account):
        reconciler.link_color(product, shopify_account, "Red", "100")
        result = reconciler.refresh_color_links(product, shopify_account)
        assert result.data["link_count"] == 1
        assert "Red" in result.data["color_links"]

        shopify_account.channel = "ebay"
        failed = reconciler.refresh_color_links(product, shopify_account)
        assert not failed.success
        assert failed.error_kind == ErrorKind.VALIDATION

    def test_failure_without_record_is_not_stored(self, reconciler, product, shopify_account):
        assert reconciler.record_color_sync(product, shopify_account, "Red", None, success=False) is None
        assert reconciler.links_for(product.id, shopify_account.id) == []

    def test_failure_marks_existing_record(self, reconciler, product, shopify_account):
        reconciler.record_color_sync(product, shopify_account, "Red", "100", success=True)
        link = reconciler.record_color_sync(product, shopify_account, "Red", None, success=False, details={"last_error": "boom"})
        assert link.link_status == "failed"
        assert link.external_product_id == "100"
        assert link.marketplace_data["last_error"] == "boom"
