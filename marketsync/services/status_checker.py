"""
상품 x 계정 동기화 상태 점검.

상태 뷰(LinkReconciler) -> 외부 리스팅 조회 -> drift 비교 -> 건강도 리포트.
"""
from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable

from sqlalchemy.orm import Session

from marketsync.clients.base import MarketplaceClient, envelope_error, envelope_status, unwrap_listing
from marketsync.clients.registry import client_for_account
from marketsync.models import Product, SyncAccount, SyncStatusValue
from marketsync.services import health
from marketsync.services.audit import record_sync_log
from marketsync.services.color_splitter import ColorSplitter, color_key
from marketsync.services.comparator import DataComparator, DriftReport
from marketsync.services.health import OverallStatus, SyncHealthStatus, SyncQuality
from marketsync.services.link_reconciler import LinkReconciler, StatusView, iso, utcnow
from marketsync.services.results import ActionResult, ErrorKind, classify_error

logger = logging.getLogger(__name__)

VIEW_TO_HEALTH: dict[SyncStatusValue, SyncHealthStatus] = {
    SyncStatusValue.SYNCED: SyncHealthStatus.SYNCED,
    SyncStatusValue.PENDING: SyncHealthStatus.PENDING,
    SyncStatusValue.FAILED: SyncHealthStatus.ERROR,
    SyncStatusValue.NOT_SYNCED: SyncHealthStatus.NOT_SYNCED,
}


def quality_for(health_score: int | None) -> SyncQuality | None:
    """저장된 health_score -> 품질 등급"""
    if health_score is None:
        return None
    if health_score >= 90:
        return SyncQuality.EXCELLENT
    if health_score >= 75:
        return SyncQuality.GOOD
    if health_score >= 50:
        return SyncQuality.FAIR
    return SyncQuality.POOR


class StatusChecker:
    def __init__(
        self,
        session: Session,
        client_resolver: Callable[[SyncAccount], MarketplaceClient] = client_for_account,
    ):
        self.session = session
        self.client_resolver = client_resolver
        self.reconciler = LinkReconciler(session)
        self.comparator = DataComparator()
        self.splitter = ColorSplitter()

    def _fetch_drift(self, client: MarketplaceClient, product: Product, account: SyncAccount, view: StatusView) -> tuple[SyncHealthStatus, DriftReport | None, list[str]]:
        """외부 리스팅을 조회해 drift 계산. (상태, drift, 조회 에러 목록)"""
        color_links = self.reconciler.color_links(product, account, linked_only=True)
        if color_links:
            groups = self.splitter.group_by_color(list(product.variants or []))
            targets = [
                (color, link.external_product_id, groups.get(color, []), self.splitter.listing_title(product.name, color))
                for color, link in color_links.items()
                if link.external_product_id
            ]
        else:
            targets = [(None, view.external_product_id, None, None)]

        reports: dict[str, DriftReport] = {}
        errors: list[str] = []
        status = SyncHealthStatus.SYNCED
        for color, external_id, variants, title in targets:
            result = client.get_product(external_id)
            if not result.get("success"):
                message = envelope_error(result)
                errors.append(f"{color or 'product'}: {message}")
                kind = classify_error(message, envelope_status(result))
                if kind == ErrorKind.NOT_FOUND:
                    if status != SyncHealthStatus.ERROR:
                        status = SyncHealthStatus.OUT_OF_SYNC
                else:
                    status = SyncHealthStatus.ERROR
                continue
            listing = unwrap_listing(result)
            reports[color or "product"] = self.comparator.compare(product, listing, variants=variants, expected_title=title)

        if not reports:
            return status, None, errors
        if not color_links:
            return status, reports["product"], errors
        return status, DriftReport.merge(reports), errors

    def check_product(self, product: Product | None, account: SyncAccount | None) -> ActionResult:
        if account is None:
            return ActionResult.fail("Sync account is required", kind=ErrorKind.VALIDATION)
        if product is None:
            return ActionResult.fail("Product not found", kind=ErrorKind.VALIDATION)

        started = time.time()
        logger.info(f"[STATUS] Checking product={product.id} account={account.name}")
        try:
            view = self.reconciler.status_view(product, account)
            status = VIEW_TO_HEALTH[view.status]
            drift: DriftReport | None = None
            fetch_errors: list[str] = []

            if status == SyncHealthStatus.SYNCED and view.external_product_id:
                client = self.client_resolver(account)
                status, drift, fetch_errors = self._fetch_drift(client, product, account, view)

            report = health.evaluate(status, drift, quality_for(view.health_score))
            duration = int((time.time() - started) * 1000)

            record_sync_log(
                self.session,
                sync_account_id=account.id,
                action="status_check",
                success=True,
                product_id=product.id,
                message=f"Status check: {report.overall_status.value} (health {report.score})",
                details={"overall_status": report.overall_status.value, "health_score": report.score, "duration_ms": duration},
            )
            logger.info(f"[STATUS] product={product.id} overall={report.overall_status.value} score={report.score} duration_ms={duration}")

            return ActionResult.ok(
                "Sync status check completed",
                product_info={
                    "id": str(product.id),
                    "name": product.name,
                    "variants_count": len(product.variants or []),
                    "colors": list(dict.fromkeys(color_key(v) for v in product.variants or [])),
                    "last_updated": iso(product.updated_at),
                },
                sync_status={**view.to_dict(), "health_status": status.value, "fetch_errors": fetch_errors},
                data_comparison=drift.to_dict() if drift else None,
                overall_status=report.overall_status.value,
                health_score=report.score,
                recommendations=report.recommendations,
                action_items=report.action_items,
                checked_at=utcnow().isoformat(),
                duration_ms=duration,
            )
        except Exception as e:
            logger.error(f"[STATUS] Status check failed for product={product.id}: {e}")
            return ActionResult.from_error("Sync status check failed", e, product_id=str(product.id))

    def check_products(self, product_ids: list[uuid.UUID], account: SyncAccount | None) -> ActionResult:
        if account is None:
            return ActionResult.fail("Sync account is required", kind=ErrorKind.VALIDATION)

        summary: dict[str, int] = {"total_checked": 0, "not_found": 0, "errors": 0}
        summary.update({status.value: 0 for status in OverallStatus})
        results: list[dict[str, Any]] = []

        for product_id in product_ids:
            product = self.session.get(Product, product_id)
            if product is None:
                summary["not_found"] += 1
                results.append({"product_id": str(product_id), "status": "not_found"})
                continue

            result = self.check_product(product, account)
            summary["total_checked"] += 1
            if not result.success:
                summary["errors"] += 1
                results.append({
                    "product_id": str(product_id),
                    "product_name": product.name,
                    "status": "error",
                    "error": result.error,
                    "error_kind": result.error_kind.value if result.error_kind else None,
                })
                continue

            overall = result.data["overall_status"]
            summary[overall] += 1
            results.append({
                "product_id": str(product_id),
                "product_name": product.name,
                "status": overall,
                "health_score": result.data["health_score"],
                "report": result.data,
            })

        logger.info(f"[STATUS] Bulk check finished: {summary}")
        return ActionResult.ok(
            f"Checked {summary['total_checked']} products",
            summary=summary,
            results=results,
            checked_at=utcnow().isoformat(),
        )
