"""
MarketplaceLink / SyncStatus 정합성 관리.

두 저장 구조(레거시 SyncStatus 1행, 신규 MarketplaceLink N행)를 하나의 상태 뷰로 읽고,
쓰기 시에는 항상 양쪽이 서로 유도 가능하도록 맞춰 둡니다.

- 읽기: 링크가 있으면 linked_at 기준 최신 링크가 기준, 없으면 SyncStatus 값
- 쓰기(synchronize): 차이가 있을 때만 갱신하며 반복 호출 시 추가 쓰기가 없어야 함
- 색상 분할 리스팅은 marketplace_data["color_filter"]로 구분
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketsync.models import (
    LinkLevel,
    LinkStatus,
    MarketplaceLink,
    OwnerKind,
    Product,
    SyncAccount,
    SyncStatus,
    SyncStatusValue,
)
from marketsync.services.audit import record_sync_log
from marketsync.services.results import ActionResult, ErrorKind

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

LINK_TO_SYNC_STATUS: dict[LinkStatus, SyncStatusValue] = {
    LinkStatus.LINKED: SyncStatusValue.SYNCED,
    LinkStatus.PENDING: SyncStatusValue.PENDING,
    LinkStatus.FAILED: SyncStatusValue.FAILED,
    LinkStatus.UNLINKED: SyncStatusValue.NOT_SYNCED,
}

SYNC_TO_LINK_STATUS: dict[SyncStatusValue, LinkStatus] = {
    SyncStatusValue.SYNCED: LinkStatus.LINKED,
    SyncStatusValue.PENDING: LinkStatus.PENDING,
    SyncStatusValue.FAILED: LinkStatus.FAILED,
    SyncStatusValue.NOT_SYNCED: LinkStatus.PENDING,
}

_missing = [s for s in LinkStatus if s not in LINK_TO_SYNC_STATUS] + [
    s for s in SyncStatusValue if s not in SYNC_TO_LINK_STATUS
]
if _missing:
    raise RuntimeError(f"Unmapped link/sync status values: {_missing}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite 등에서 naive로 돌아오는 datetime을 UTC aware로 맞춘다"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def _same_instant(a: datetime | None, b: datetime | None) -> bool:
    return as_utc(a) == as_utc(b)


def _link_status(link: MarketplaceLink) -> LinkStatus:
    try:
        return LinkStatus(link.link_status)
    except ValueError:
        return LinkStatus.PENDING


def _sync_value(raw: str | None) -> SyncStatusValue:
    try:
        return SyncStatusValue(raw)
    except ValueError:
        return SyncStatusValue.NOT_SYNCED


def latest_link(links: list[MarketplaceLink]) -> MarketplaceLink | None:
    """linked_at 최신순 (NULL은 뒤로), 동률이면 created_at 최신순"""
    if not links:
        return None

    def _key(link: MarketplaceLink):
        linked = as_utc(link.linked_at)
        return (linked is not None, linked or _EPOCH, as_utc(link.created_at) or _EPOCH)

    return max(links, key=_key)


@dataclass
class StatusView:
    status: SyncStatusValue
    source: str  # marketplace_link | sync_status | none
    external_product_id: str | None = None
    external_variant_id: str | None = None
    last_synced_at: datetime | None = None
    health_score: int | None = None
    links: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_synced(self) -> bool:
        return self.status == SyncStatusValue.SYNCED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "source": self.source,
            "external_product_id": self.external_product_id,
            "external_variant_id": self.external_variant_id,
            "last_synced_at": iso(self.last_synced_at),
            "health_score": self.health_score,
            "links": self.links,
        }


@dataclass
class ReconcileOutcome:
    updated: bool
    message: str
    sync_status_id: uuid.UUID | None = None
    marketplace_link_id: uuid.UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "message": self.message,
            "sync_status_id": str(self.sync_status_id) if self.sync_status_id else None,
            "marketplace_link_id": str(self.marketplace_link_id) if self.marketplace_link_id else None,
        }


def describe_link(link: MarketplaceLink) -> dict[str, Any]:
    return {
        "id": str(link.id),
        "owner_kind": link.owner_kind,
        "owner_id": str(link.owner_id),
        "color": link.color_filter,
        "external_product_id": link.external_product_id,
        "external_variant_id": link.external_variant_id,
        "link_level": link.link_level,
        "link_status": link.link_status,
        "linked_at": iso(link.linked_at),
        "linked_by": link.linked_by,
        "marketplace_data": dict(link.marketplace_data or {}),
    }


class LinkReconciler:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def links_for(self, product_id: uuid.UUID, sync_account_id: uuid.UUID) -> list[MarketplaceLink]:
        stmt = select(MarketplaceLink).where(
            MarketplaceLink.product_id == product_id,
            MarketplaceLink.sync_account_id == sync_account_id,
        )
        return list(self.session.scalars(stmt).all())

    def get_status(self, product_id: uuid.UUID, sync_account_id: uuid.UUID) -> SyncStatus | None:
        stmt = select(SyncStatus).where(
            SyncStatus.product_id == product_id,
            SyncStatus.sync_account_id == sync_account_id,
        )
        return self.session.scalars(stmt).first()

    def find_or_create_status(self, product: Product, account: SyncAccount) -> SyncStatus:
        status = self.get_status(product.id, account.id)
        if status is None:
            status = SyncStatus(
                product_id=product.id,
                sync_account_id=account.id,
                sync_status=SyncStatusValue.PENDING.value,
                meta={},
            )
            self.session.add(status)
            self.session.flush()
        return status

    def status_view(self, product: Product, account: SyncAccount) -> StatusView:
        links = self.links_for(product.id, account.id)
        status = self.get_status(product.id, account.id)
        health = status.health_score if status else None

        latest = latest_link(links)
        if latest is not None:
            link_status = _link_status(latest)
            retired = link_status == LinkStatus.UNLINKED
            return StatusView(
                status=LINK_TO_SYNC_STATUS[link_status],
                source="marketplace_link",
                external_product_id=None if retired else latest.external_product_id,
                external_variant_id=None if retired else latest.external_variant_id,
                last_synced_at=latest.linked_at,
                health_score=health,
                links=[describe_link(link) for link in links if link.is_active],
            )

        if status is not None:
            return StatusView(
                status=_sync_value(status.sync_status),
                source="sync_status",
                external_product_id=status.external_product_id,
                external_variant_id=status.external_variant_id,
                last_synced_at=status.last_synced_at,
                health_score=health,
            )

        return StatusView(status=SyncStatusValue.NOT_SYNCED, source="none")

    def product_listing_view(self, product: Product, account: SyncAccount) -> StatusView:
        """
        상품 전체를 담는 단일 리스팅의 상태.

        색상 링크는 보지 않습니다. SyncStatus의 외부 ID가 색상 리스팅을 가리키면
        (색상 분할 결과가 미러링된 경우) 단일 리스팅이 없는 것으로 봅니다.
        """
        links = self.links_for(product.id, account.id)
        status = self.get_status(product.id, account.id)
        health = status.health_score if status else None

        link = self._product_link(product, account, links)
        if link is not None and _link_status(link) != LinkStatus.UNLINKED:
            return StatusView(
                status=LINK_TO_SYNC_STATUS[_link_status(link)],
                source="marketplace_link",
                external_product_id=link.external_product_id,
                external_variant_id=link.external_variant_id,
                last_synced_at=link.linked_at,
                health_score=health,
                links=[describe_link(link)],
            )

        color_ids = {l.external_product_id for l in links if l.color_filter and l.external_product_id}
        if status is not None and status.external_product_id and status.external_product_id not in color_ids:
            return StatusView(
                status=_sync_value(status.sync_status),
                source="sync_status",
                external_product_id=status.external_product_id,
                external_variant_id=status.external_variant_id,
                last_synced_at=status.last_synced_at,
                health_score=health,
            )

        return StatusView(status=SyncStatusValue.NOT_SYNCED, source="none", health_score=health)

    # ------------------------------------------------------------------
    # 정합성 맞추기
    # ------------------------------------------------------------------

    def _desired_from_link(self, link: MarketplaceLink) -> dict[str, Any]:
        link_status = _link_status(link)
        desired: dict[str, Any] = {"sync_status": LINK_TO_SYNC_STATUS[link_status].value}
        if link_status == LinkStatus.UNLINKED:
            desired["external_product_id"] = None
            desired["external_variant_id"] = None
        else:
            desired["external_product_id"] = link.external_product_id
            desired["external_variant_id"] = link.external_variant_id
            desired["last_synced_at"] = link.linked_at
        return desired

    def _status_differs(self, status: SyncStatus, desired: dict[str, Any]) -> bool:
        for key, value in desired.items():
            current = getattr(status, key)
            if key == "last_synced_at":
                if not _same_instant(current, value):
                    return True
            elif current != value:
                return True
        return False

    def _apply_latest(self, product: Product, account: SyncAccount, links: list[MarketplaceLink]) -> tuple[SyncStatus | None, MarketplaceLink | None, bool]:
        """최신 링크 기준으로 SyncStatus를 맞춘다. (status, latest, 변경 여부)"""
        latest = latest_link(links)
        if latest is None:
            return self.get_status(product.id, account.id), None, False

        desired = self._desired_from_link(latest)
        status = self.get_status(product.id, account.id)
        if status is not None and not self._status_differs(status, desired):
            return status, latest, False

        if status is None:
            status = self.find_or_create_status(product, account)
        for key, value in desired.items():
            setattr(status, key, value)
        status.meta = {
            **(status.meta or {}),
            "synchronized_at": utcnow().isoformat(),
            "synchronized_from": "marketplace_link",
            "marketplace_link_id": str(latest.id),
        }
        self.session.flush()
        return status, latest, True

    def synchronize(self, product: Product, account: SyncAccount, actor: str = SYSTEM_ACTOR) -> ReconcileOutcome:
        links = self.links_for(product.id, account.id)

        if links:
            status, latest, changed = self._apply_latest(product, account, links)
            if not changed:
                logger.info(f"[RECONCILE] product={product.id} account={account.id} already consistent")
                return ReconcileOutcome(
                    updated=False,
                    message="No synchronization needed - systems are already consistent",
                    sync_status_id=status.id if status else None,
                    marketplace_link_id=latest.id if latest else None,
                )
            record_sync_log(
                self.session,
                sync_account_id=account.id,
                action="sync_systems",
                success=True,
                product_id=product.id,
                message="Synchronized MarketplaceLink and SyncStatus systems",
                details={"source": "marketplace_link", "marketplace_link_id": str(latest.id), "actor": actor},
            )
            logger.info(f"[RECONCILE] SyncStatus updated from link {latest.id} for product={product.id}")
            return ReconcileOutcome(
                updated=True,
                message="System status synchronized from MarketplaceLink",
                sync_status_id=status.id,
                marketplace_link_id=latest.id,
            )

        status = self.get_status(product.id, account.id)
        if status is None or not status.external_product_id:
            return ReconcileOutcome(
                updated=False,
                message="No synchronization needed - systems are already consistent",
                sync_status_id=status.id if status else None,
            )

        # SyncStatus만 외부 ID를 갖고 있으면 링크를 생성
        link_status = SYNC_TO_LINK_STATUS[_sync_value(status.sync_status)]
        link = MarketplaceLink(
            owner_kind=OwnerKind.PRODUCT.value,
            owner_id=product.id,
            product_id=product.id,
            sync_account_id=account.id,
            internal_sku=product.parent_sku or "NO-SKU",
            external_sku=product.parent_sku,
            external_product_id=status.external_product_id,
            external_variant_id=status.external_variant_id,
            link_level=LinkLevel.PRODUCT.value,
            link_status=link_status.value,
            linked_at=status.last_synced_at,
            linked_by=actor,
            marketplace_data={
                "synchronized_at": utcnow().isoformat(),
                "synchronized_from": "sync_status",
                "sync_status_id": str(status.id),
            },
        )
        self.session.add(link)
        self.session.flush()

        status.sync_status = LINK_TO_SYNC_STATUS[link_status].value
        status.meta = {
            **(status.meta or {}),
            "synchronized_at": utcnow().isoformat(),
            "marketplace_link_id": str(link.id),
        }
        self.session.flush()

        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="sync_systems",
            success=True,
            product_id=product.id,
            message="Synchronized MarketplaceLink and SyncStatus systems",
            details={"source": "sync_status", "marketplace_link_id": str(link.id), "actor": actor},
        )
        logger.info(f"[RECONCILE] MarketplaceLink {link.id} materialized from SyncStatus for product={product.id}")
        return ReconcileOutcome(
            updated=True,
            message="System status synchronized from SyncStatus",
            sync_status_id=status.id,
            marketplace_link_id=link.id,
        )

    def mirror_links_to_status(self, product: Product, account: SyncAccount) -> SyncStatus | None:
        status, _, _ = self._apply_latest(product, account, self.links_for(product.id, account.id))
        return status

    # ------------------------------------------------------------------
    # 상품 단위 수동 링크
    # ------------------------------------------------------------------

    def _product_link(
        self,
        product: Product,
        account: SyncAccount,
        links: list[MarketplaceLink] | None = None,
    ) -> MarketplaceLink | None:
        if links is None:
            links = self.links_for(product.id, account.id)
        candidates = [
            link for link in links
            if link.owner_kind == OwnerKind.PRODUCT.value and link.color_filter is None
        ]
        return latest_link(candidates)

    def _mark_linked(
        self,
        link: MarketplaceLink,
        external_product_id: str | None,
        actor: str,
        external_variant_id: str | None = None,
    ) -> None:
        link.link_status = LinkStatus.LINKED.value
        link.linked_at = utcnow()
        link.linked_by = actor
        link.external_product_id = external_product_id or link.external_product_id
        link.external_variant_id = external_variant_id or link.external_variant_id

    def _retire(self, link: MarketplaceLink, actor: str) -> None:
        link.link_status = LinkStatus.UNLINKED.value
        link.linked_at = None
        link.marketplace_data = {
            **(link.marketplace_data or {}),
            "unlinked_at": utcnow().isoformat(),
            "unlinked_by": actor,
        }

    def link_product(
        self,
        product: Product,
        account: SyncAccount,
        external_product_id: str,
        actor: str = SYSTEM_ACTOR,
        external_variant_id: str | None = None,
    ) -> ActionResult:
        external_product_id = (external_product_id or "").strip()
        if not external_product_id:
            return ActionResult.fail("External product ID is required", kind=ErrorKind.VALIDATION)

        link = self._product_link(product, account)
        if link is None:
            link = MarketplaceLink(
                owner_kind=OwnerKind.PRODUCT.value,
                owner_id=product.id,
                product_id=product.id,
                sync_account_id=account.id,
                internal_sku=product.parent_sku or "NO-SKU",
                external_sku=product.parent_sku,
                link_level=LinkLevel.PRODUCT.value,
                marketplace_data={"linked_manually": True},
            )
            self.session.add(link)
        self._mark_linked(link, external_product_id, actor, external_variant_id)
        self.session.flush()

        status = self.mirror_links_to_status(product, account)
        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="link",
            success=True,
            product_id=product.id,
            message=f"Product linked to external product {external_product_id}",
            details={"marketplace_link_id": str(link.id), "actor": actor},
        )
        logger.info(f"[RECONCILE] product={product.id} linked to {external_product_id} by {actor}")
        return ActionResult.ok(
            f"Product linked to {account.channel} product {external_product_id}",
            marketplace_link_id=str(link.id),
            sync_status_id=str(status.id) if status else None,
            external_product_id=external_product_id,
        )

    def unlink_product(self, product: Product, account: SyncAccount, actor: str = SYSTEM_ACTOR) -> ActionResult:
        unlinked_count = 0
        external_ids: list[str] = []

        for link in self.links_for(product.id, account.id):
            if not link.is_active:
                continue
            if link.external_product_id and link.external_product_id not in external_ids:
                external_ids.append(link.external_product_id)
            self._retire(link, actor)
            unlinked_count += 1

        status = self.get_status(product.id, account.id)
        if status is not None and status.external_product_id:
            previous = status.external_product_id
            if previous not in external_ids:
                external_ids.append(previous)
            status.external_product_id = None
            status.external_variant_id = None
            status.sync_status = SyncStatusValue.NOT_SYNCED.value
            status.meta = {
                **(status.meta or {}),
                "unlinked_manually": True,
                "unlinked_at": utcnow().isoformat(),
                "unlinked_by": actor,
                "previous_external_id": previous,
            }
            unlinked_count += 1

        if unlinked_count == 0:
            return ActionResult.ok(f"No active links found for {account.channel} to unlink", unlinked_count=0)

        self.session.flush()
        id_list = ", ".join(external_ids) if external_ids else "Unknown"
        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="unlink",
            success=True,
            product_id=product.id,
            message=f"Product unlinked from external IDs: {id_list}",
            details={"external_ids": external_ids, "actor": actor},
        )
        logger.info(f"[RECONCILE] product={product.id} unlinked from {id_list} by {actor}")
        return ActionResult.ok(
            f"Product unlinked from {unlinked_count} {account.channel} link(s)",
            unlinked_count=unlinked_count,
            external_ids=external_ids,
        )

    # ------------------------------------------------------------------
    # 색상 링크 관리
    # ------------------------------------------------------------------

    def color_links(self, product: Product, account: SyncAccount, linked_only: bool = False) -> dict[str, MarketplaceLink]:
        """활성 색상 링크 (색상 -> 최신 링크)"""
        grouped: dict[str, list[MarketplaceLink]] = {}
        for link in self.links_for(product.id, account.id):
            if link.link_level != LinkLevel.PRODUCT.value or not link.is_active:
                continue
            color = link.color_filter
            if not color:
                continue
            if linked_only and link.link_status != LinkStatus.LINKED.value:
                continue
            grouped.setdefault(color, []).append(link)
        return {color: latest_link(items) for color, items in grouped.items()}

    def color_link_details(self, product: Product, account: SyncAccount, color: str) -> dict[str, Any] | None:
        link = self.color_links(product, account).get(color)
        return describe_link(link) if link else None

    def link_color(
        self,
        product: Product,
        account: SyncAccount,
        color: str,
        external_product_id: str,
        actor: str = SYSTEM_ACTOR,
    ) -> ActionResult:
        color = (color or "").strip()
        external_product_id = (external_product_id or "").strip()
        if not color or not external_product_id:
            return ActionResult.fail("Color and external product ID are required", kind=ErrorKind.VALIDATION)

        same = [
            link for link in self.links_for(product.id, account.id)
            if link.is_active and link.color_filter == color
        ]
        for link in same:
            if link.external_product_id == external_product_id and link.link_status == LinkStatus.LINKED.value:
                return ActionResult.ok(
                    f"Color '{color}' already linked to product {external_product_id}",
                    marketplace_link_id=str(link.id),
                    created=False,
                )

        # 색상당 활성 링크는 1개만 유지
        for link in same:
            self._retire(link, actor)

        link = MarketplaceLink(
            owner_kind=OwnerKind.PRODUCT.value,
            owner_id=product.id,
            product_id=product.id,
            sync_account_id=account.id,
            internal_sku=product.parent_sku or "NO-SKU",
            external_sku=product.parent_sku,
            link_level=LinkLevel.PRODUCT.value,
            marketplace_data={"color_filter": color, "linked_manually": True},
        )
        self.session.add(link)
        self._mark_linked(link, external_product_id, actor)
        self.session.flush()
        self.mirror_links_to_status(product, account)

        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="color_link",
            success=True,
            product_id=product.id,
            message=f"Color '{color}' linked to external product {external_product_id}",
            details={"color": color, "marketplace_link_id": str(link.id), "replaced": len(same), "actor": actor},
        )
        return ActionResult.ok(
            f"Linked {color} to {account.channel} product {external_product_id}",
            marketplace_link_id=str(link.id),
            created=True,
            replaced=len(same),
        )

    def unlink_color(self, product: Product, account: SyncAccount, color: str, actor: str = SYSTEM_ACTOR) -> ActionResult:
        link = self.color_links(product, account).get(color)
        if link is None:
            return ActionResult.fail(f"No link found for {color} color", kind=ErrorKind.NOT_FOUND)

        external_product_id = link.external_product_id
        self._retire(link, actor)
        self.session.flush()
        self.mirror_links_to_status(product, account)

        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="color_unlink",
            success=True,
            product_id=product.id,
            message=f"Color '{color}' unlinked from external product {external_product_id}",
            details={"color": color, "marketplace_link_id": str(link.id), "actor": actor},
        )
        return ActionResult.ok(
            f"Unlinked {color} from {account.channel} product {external_product_id}",
            marketplace_link_id=str(link.id),
        )

    def update_color_link(
        self,
        product: Product,
        account: SyncAccount,
        color: str,
        new_external_product_id: str,
        actor: str = SYSTEM_ACTOR,
    ) -> ActionResult:
        new_external_product_id = (new_external_product_id or "").strip()
        if not new_external_product_id:
            return ActionResult.fail("New external product ID is required", kind=ErrorKind.VALIDATION)

        link = self.color_links(product, account).get(color)
        if link is None:
            return ActionResult.fail(f"No link found for {color} color to update", kind=ErrorKind.NOT_FOUND)

        old_id = link.external_product_id
        link.external_product_id = new_external_product_id
        link.link_status = LinkStatus.LINKED.value
        link.linked_at = utcnow()
        link.linked_by = actor
        link.marketplace_data = {
            **(link.marketplace_data or {}),
            "updated_at": utcnow().isoformat(),
            "updated_manually": True,
            "previous_external_id": old_id,
        }
        self.session.flush()
        self.mirror_links_to_status(product, account)

        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="color_update",
            success=True,
            product_id=product.id,
            message=f"Color '{color}' link moved from {old_id} to {new_external_product_id}",
            details={"color": color, "previous_external_id": old_id, "actor": actor},
        )
        return ActionResult.ok(
            f"Updated {color} link from product {old_id} to {new_external_product_id}",
            marketplace_link_id=str(link.id),
            previous_external_id=old_id,
        )

    def refresh_color_links(self, product: Product, account: SyncAccount, actor: str = SYSTEM_ACTOR) -> ActionResult:
        if account.channel != "shopify":
            return ActionResult.fail(
                "Color link refresh is only available for Shopify accounts",
                kind=ErrorKind.VALIDATION,
            )

        links = self.color_links(product, account)
        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="color_refresh",
            success=True,
            product_id=product.id,
            message=f"Refreshed {len(links)} color links",
            details={"colors": sorted(links), "actor": actor},
        )
        return ActionResult.ok(
            f"Refreshed {len(links)} {account.channel} color links",
            link_count=len(links),
            color_links={color: describe_link(link) for color, link in links.items()},
        )

    # ------------------------------------------------------------------
    # 오케스트레이터용 기록
    # ------------------------------------------------------------------

    def color_record(self, product: Product, account: SyncAccount, color: str) -> MarketplaceLink | None:
        """색상별 동기화 기록 (retired 제외 최신 링크)"""
        return self.color_links(product, account).get(color)

    def record_color_sync(
        self,
        product: Product,
        account: SyncAccount,
        color: str,
        external_product_id: str | None,
        *,
        success: bool,
        actor: str = SYSTEM_ACTOR,
        details: dict[str, Any] | None = None,
    ) -> MarketplaceLink | None:
        """색상 리스팅 생성/검증 결과를 링크에 반영. 실패는 기존 기록이 있을 때만 남긴다."""
        link = self.color_record(product, account, color)

        if not success:
            if link is None:
                return None
            link.link_status = LinkStatus.FAILED.value
            link.marketplace_data = {
                **(link.marketplace_data or {}),
                **(details or {}),
                "last_sync_success": False,
                "last_sync_timestamp": utcnow().isoformat(),
            }
            self.session.flush()
            return link

        if link is None:
            link = MarketplaceLink(
                owner_kind=OwnerKind.PRODUCT.value,
                owner_id=product.id,
                product_id=product.id,
                sync_account_id=account.id,
                internal_sku=product.parent_sku or "NO-SKU",
                external_sku=product.parent_sku,
                link_level=LinkLevel.PRODUCT.value,
                marketplace_data={"color_filter": color, "sync_type": "color_split"},
            )
            self.session.add(link)
        elif link.external_product_id and link.external_product_id != external_product_id:
            details = {**(details or {}), "previous_external_id": link.external_product_id}

        link.external_product_id = external_product_id
        link.link_status = LinkStatus.LINKED.value
        link.linked_at = utcnow()
        link.linked_by = actor
        link.marketplace_data = {
            **(link.marketplace_data or {}),
            **(details or {}),
            "last_sync_method": "graphql_color_split",
            "last_sync_success": True,
            "last_sync_timestamp": utcnow().isoformat(),
        }
        self.session.flush()
        return link

    def mark_failed(
        self,
        product: Product,
        account: SyncAccount,
        error: dict[str, Any],
        health_score: int,
        actor: str = SYSTEM_ACTOR,
    ) -> SyncStatus:
        """동기화 실패 기록: 상품 단위 활성 링크와 SyncStatus를 failed로"""
        link = self._product_link(product, account)
        if link is not None and link.is_active:
            link.link_status = LinkStatus.FAILED.value
            link.marketplace_data = {**(link.marketplace_data or {}), "last_error": error, "failed_by": actor}

        status = self.find_or_create_status(product, account)
        status.sync_status = SyncStatusValue.FAILED.value
        status.health_score = health_score
        status.meta = {**(status.meta or {}), "errors": error}
        self.session.flush()
        return status

    def record_product_sync(
        self,
        product: Product,
        account: SyncAccount,
        external_product_id: str,
        *,
        actor: str = SYSTEM_ACTOR,
        details: dict[str, Any] | None = None,
        touch: bool = True,
    ) -> MarketplaceLink:
        """
        단일 리스팅(REST) 동기화 결과를 상품 단위 링크에 반영.

        touch=False면 기존 linked_at을 유지합니다 (해소되지 않은 drift가 남아
        다음 동기화에서 다시 점검해야 하는 경우).
        """
        link = self._product_link(product, account)
        previous_linked_at = link.linked_at if link is not None and link.is_active else None
        if link is None or not link.is_active:
            link = MarketplaceLink(
                owner_kind=OwnerKind.PRODUCT.value,
                owner_id=product.id,
                product_id=product.id,
                sync_account_id=account.id,
                internal_sku=product.parent_sku or "NO-SKU",
                external_sku=product.parent_sku,
                link_level=LinkLevel.PRODUCT.value,
                marketplace_data={},
            )
            self.session.add(link)
        elif link.external_product_id and link.external_product_id != external_product_id:
            details = {**(details or {}), "previous_external_id": link.external_product_id}

        self._mark_linked(link, None, actor)
        if not touch and previous_linked_at is not None:
            link.linked_at = previous_linked_at
        link.external_product_id = external_product_id
        link.marketplace_data = {
            **(link.marketplace_data or {}),
            **(details or {}),
            "last_sync_method": "rest",
            "last_sync_timestamp": utcnow().isoformat(),
        }
        self.session.flush()
        return link
