"""
상품 x 계정 동기화 오케스트레이터.

상태 전이: NEEDS_CHECK -> SKIPPED | CREATING | UPDATING -> SUCCEEDED | FAILED

- 전략 선택(REST / 색상 분할) 후 외부 클라이언트 호출
- 색상 분할 시 원격 호출은 스레드 풀로 fan-out, 결과를 모두 모은 뒤 세션 쓰기 (스레드에서 세션 사용 금지)
- (product, account) 쌍 단위 단일 작성자 락
- 공개 연산은 예외를 던지지 않고 ActionResult 반환
"""
from __future__ import annotations

import logging
import math
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from sqlalchemy.orm import Session

from marketsync.clients.base import MarketplaceClient, envelope_error, envelope_status, extract_numeric_id, unwrap_listing
from marketsync.clients.registry import client_for_account
from marketsync.models import LinkStatus, Product, SyncAccount, SyncStatusValue, Variant
from marketsync.services import health
from marketsync.services.audit import record_sync_log
from marketsync.services.color_splitter import ColorListing, ColorSplitter
from marketsync.services.comparator import DataComparator, DriftReport, external_variants
from marketsync.services.health import SyncHealthStatus
from marketsync.services.link_reconciler import SYSTEM_ACTOR, LinkReconciler, as_utc, utcnow
from marketsync.services.pair_lock import PairLock
from marketsync.services.results import (
    ActionResult,
    ErrorKind,
    PairLocked,
    SyncError,
    SyncValidationError,
    classify_error,
    error_for_kind,
    error_from_response,
)
from marketsync.services.strategy import (
    ProductShape,
    SyncStrategy,
    analyze_product,
    can_fallback_to_rest,
    select_strategy,
)
from marketsync.settings import settings

logger = logging.getLogger(__name__)

# get_product + create_product + create_bulk_variants
REMOTE_CALLS_PER_COLOR = 3


class SyncState(str, Enum):
    NEEDS_CHECK = "needs_check"
    SKIPPED = "skipped"
    CREATING = "creating"
    UPDATING = "updating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SyncOptions:
    force: bool = False
    force_graphql: bool = False
    force_rest: bool = False
    method: str = "manual"


@dataclass
class ColorOutcome:
    color: str
    success: bool
    action: str
    external_product_id: str | None = None
    reason: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    variants_created: int = 0
    bulk_warning: str | None = None
    replaced_external_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "color": self.color,
            "success": self.success,
            "action": self.action,
            "external_product_id": self.external_product_id,
        }
        if self.reason:
            data["reason"] = self.reason
        if self.error:
            data["error"] = self.error
            data["error_kind"] = self.error_kind.value if self.error_kind else None
        if self.variants_created:
            data["variants_created"] = self.variants_created
        if self.bulk_warning:
            data["bulk_warning"] = self.bulk_warning
        if self.replaced_external_id:
            data["replaced_external_id"] = self.replaced_external_id
        return data


def listing_url(
    account: SyncAccount,
    external_product_id: str | None,
    extract: Callable[[str], int | None] = extract_numeric_id,
) -> str | None:
    numeric_id = extract(external_product_id) if external_product_id else None
    store = (account.store_url or settings.shopify_store_url or "").strip()
    if numeric_id is None or not store:
        return None
    store = store.removeprefix("https://").removeprefix("http://").rstrip("/")
    return f"https://{store}/admin/products/{numeric_id}"


def has_changes_since(product: Product, variants: list[Variant], since) -> bool:
    """상품/variant 중 since 이후 수정된 것이 있는지"""
    since = as_utc(since)
    if since is None:
        return True
    stamps = [product.updated_at] + [v.updated_at for v in variants]
    return any(as_utc(stamp) is not None and as_utc(stamp) > since for stamp in stamps)


def created_listing_id(result: dict[str, Any]) -> str | None:
    listing = result.get("product") or {}
    if isinstance(listing, dict) and listing.get("id") is not None:
        return str(listing["id"])
    return None


class SyncOrchestrator:
    def __init__(
        self,
        session: Session,
        client_resolver: Callable[[SyncAccount], MarketplaceClient] = client_for_account,
        splitter: ColorSplitter | None = None,
        max_workers: int | None = None,
    ):
        self.session = session
        self.client_resolver = client_resolver
        self.splitter = splitter or ColorSplitter()
        self.reconciler = LinkReconciler(session)
        self.comparator = DataComparator()
        self.max_workers = max_workers or settings.max_color_workers

    # ------------------------------------------------------------------
    # 공개 연산
    # ------------------------------------------------------------------

    def sync_product(
        self,
        product: Product | None,
        account: SyncAccount | None,
        options: SyncOptions | None = None,
        actor: str = SYSTEM_ACTOR,
    ) -> ActionResult:
        options = options or SyncOptions()

        if account is None:
            return ActionResult.fail("Sync account is required", kind=ErrorKind.VALIDATION)
        if not account.is_active:
            return ActionResult.fail(f"Sync account '{account.name}' is inactive", kind=ErrorKind.VALIDATION)
        if product is None:
            return ActionResult.fail("Product not found", kind=ErrorKind.VALIDATION)

        try:
            client = self.client_resolver(account)
        except SyncValidationError as e:
            return ActionResult.from_error("Product sync failed", e, product_id=str(product.id))

        logger.info(
            f"[SYNC] Starting sync product={product.id} account={account.name} "
            f"method={options.method} force={options.force}"
        )
        started = time.time()

        try:
            with PairLock(self.session, product.id, account.id).hold():
                # 실패 기록도 락을 잡은 상태에서 남긴다
                try:
                    return self._run(product, account, client, options, actor, started)
                except Exception as e:
                    return self._fail(product, account, e, options, actor, started)
        except PairLocked as e:
            return ActionResult.from_error("Product sync skipped", e, product_id=str(product.id))

    def _fail(
        self,
        product: Product,
        account: SyncAccount,
        exc: Exception,
        options: SyncOptions,
        actor: str,
        started: float,
    ) -> ActionResult:
        duration = int((time.time() - started) * 1000)
        logger.error(f"[SYNC] Sync failed product={product.id} duration_ms={duration}: {exc}")
        self._record_failure(product, account, exc, options, actor, duration)
        details = dict(exc.details) if isinstance(exc, SyncError) else {}
        return ActionResult.from_error(
            "Product sync failed",
            exc,
            product_id=str(product.id),
            state=SyncState.FAILED.value,
            duration_ms=duration,
            **details,
        )

    def sync_products(
        self,
        product_ids: list[uuid.UUID],
        account: SyncAccount | None,
        options: SyncOptions | None = None,
        stop_on_failure: bool = False,
        actor: str = SYSTEM_ACTOR,
    ) -> ActionResult:
        """
        여러 상품 순차 동기화.

        stop_on_failure가 켜져 있으면 첫 실패 이후 항목은 cancelled로 보고하며,
        이미 완료된 항목은 되돌리지 않습니다.
        """
        if account is None:
            return ActionResult.fail("Sync account is required", kind=ErrorKind.VALIDATION)

        summary = {
            "total_requested": len(product_ids),
            "successful": 0,
            "skipped": 0,
            "failed": 0,
            "not_found": 0,
            "cancelled": 0,
        }
        results: list[dict[str, Any]] = []
        stopped = False

        for product_id in product_ids:
            if stopped:
                summary["cancelled"] += 1
                results.append({"product_id": str(product_id), "status": "cancelled"})
                continue

            product = self.session.get(Product, product_id)
            if product is None:
                summary["not_found"] += 1
                results.append({"product_id": str(product_id), "status": "not_found"})
                continue

            result = self.sync_product(product, account, options, actor)
            if result.success:
                if result.data.get("action") == "skipped":
                    summary["skipped"] += 1
                    item_status = "skipped"
                else:
                    summary["successful"] += 1
                    item_status = "synced"
            else:
                summary["failed"] += 1
                item_status = "failed"
                if stop_on_failure:
                    stopped = True
                    logger.warning(f"[SYNC] Bulk sync stopped after failure on product={product_id}")

            results.append({
                "product_id": str(product_id),
                "product_name": product.name,
                "status": item_status,
                "result": result.to_dict(),
            })

        logger.info(f"[SYNC] Bulk sync finished: {summary}")
        message = (
            f"Bulk sync finished: {summary['successful']} synced, {summary['skipped']} skipped, "
            f"{summary['failed']} failed"
        )
        return ActionResult.ok(message, summary=summary, results=results, last_synced_at=utcnow().isoformat())

    # ------------------------------------------------------------------
    # 내부 흐름
    # ------------------------------------------------------------------

    def _run(
        self,
        product: Product,
        account: SyncAccount,
        client: MarketplaceClient,
        options: SyncOptions,
        actor: str,
        started: float,
    ) -> ActionResult:
        shape = analyze_product(product)
        if shape.variant_count == 0:
            logger.info(f"[SYNC] product={product.id} has no variants to sync")
            return ActionResult.ok(
                "No color variants found to sync",
                action="no_colors",
                state=SyncState.SKIPPED.value,
                product_id=str(product.id),
            )

        strategy = select_strategy(shape, options.force_graphql, options.force_rest)
        logger.info(
            f"[SYNC] product={product.id} strategy={strategy.value} "
            f"variants={shape.variant_count} colors={shape.color_count}"
        )

        if strategy == SyncStrategy.REST:
            return self._sync_rest(product, account, client, options, actor, started, shape)

        split = self._sync_split(product, account, client, options, actor)
        if split["colors_succeeded"] > 0:
            return self._finish_split(product, account, options, actor, started, split)

        first_failure = next(o for o in split["outcomes"] if not o.success)
        if can_fallback_to_rest(shape):
            logger.warning(
                f"[SYNC] Color split failed for every color of product={product.id}, "
                f"falling back to REST ({shape.variant_count} variants)"
            )
            result = self._sync_rest(product, account, client, options, actor, started, shape)
            result.data["fallback_from"] = SyncStrategy.GRAPHQL_SPLIT.value
            result.data["split_attempt"] = [o.to_dict() for o in split["outcomes"]]
            return result

        raise error_for_kind(
            first_failure.error_kind or ErrorKind.UNKNOWN,
            f"All {split['colors_failed']} colors failed: {first_failure.error}",
            details={"color_results": [o.to_dict() for o in split["outcomes"]]},
        )

    # ---- REST (단일 리스팅) ----

    def _sync_rest(
        self,
        product: Product,
        account: SyncAccount,
        client: MarketplaceClient,
        options: SyncOptions,
        actor: str,
        started: float,
        shape: ProductShape,
    ) -> ActionResult:
        view = self.reconciler.product_listing_view(product, account)
        external_id = view.external_product_id
        variants = list(product.variants or [])

        if (
            not options.force
            and external_id
            and view.status == SyncStatusValue.SYNCED
            and not has_changes_since(product, variants, view.last_synced_at)
        ):
            duration = int((time.time() - started) * 1000)
            logger.info(f"[SYNC] Skipped product={product.id} - already up to date")
            return ActionResult.ok(
                "Product is already synchronized",
                action="skipped",
                reason="already_synced",
                state=SyncState.SKIPPED.value,
                external_product_id=external_id,
                duration_ms=duration,
            )

        listing = self.splitter.whole_listing(product)
        replaced_id: str | None = None
        drift: DriftReport | None = None
        residual: DriftReport | None = None
        prices_updated: dict[str, float] = {}
        state = SyncState.UPDATING if external_id else SyncState.CREATING
        action = "created"

        if state == SyncState.UPDATING:
            check = client.get_product(external_id)
            if check.get("success"):
                current = unwrap_listing(check)
                drift = self.comparator.compare(product, current)
                prices_updated = self._push_price_drift(client, external_id, current, drift)
                residual = drift.without_pricing(prices_updated)
                action = "updated" if prices_updated else "no_changes"
            else:
                message = envelope_error(check)
                kind = classify_error(message, envelope_status(check))
                if kind != ErrorKind.NOT_FOUND:
                    raise error_from_response("Failed to fetch current listing", message, envelope_status(check))
                logger.info(f"[SYNC] Listing {external_id} not found, re-creating for product={product.id}")
                replaced_id = external_id
                state = SyncState.CREATING

        if state == SyncState.CREATING:
            created = client.create_product(listing.payload)
            if not created.get("success"):
                raise error_from_response("Failed to create product", envelope_error(created), envelope_status(created))
            external_id = created_listing_id(created)
            if not external_id:
                raise error_for_kind(ErrorKind.REMOTE, "Product creation returned no listing id")
            action = "created"

        unresolved = residual is not None and residual.needs_sync
        duration = int((time.time() - started) * 1000)
        details: dict[str, Any] = {
            "action": action,
            "sync_method": options.method,
            "strategy": SyncStrategy.REST.value,
            "unresolved_drift": residual.to_dict() if unresolved else None,
        }
        if replaced_id:
            details["replaced_external_id"] = replaced_id
        if prices_updated:
            details["prices_updated"] = prices_updated

        # 남은 drift가 있으면 linked_at을 유지해 다음 동기화가 다시 점검하게 한다
        self.reconciler.record_product_sync(
            product, account, external_id, actor=actor, details=details, touch=not unresolved,
        )
        status = self.reconciler.mirror_links_to_status(product, account)
        status.health_score = health.score(SyncHealthStatus.SYNCED, residual) if unresolved else 100
        status.meta = {
            **(status.meta or {}),
            "last_sync": {**details, "duration_ms": duration, "at": utcnow().isoformat(), "by": actor},
        }
        self.session.flush()

        if unresolved:
            log_message = f"Product {action} as listing {external_id} with unresolved drift (score {residual.drift_score})"
        else:
            log_message = f"Product {action} as listing {external_id}"
        record_sync_log(
            self.session,
            sync_account_id=account.id,
            action="sync",
            success=True,
            product_id=product.id,
            message=log_message,
            details={**details, "duration_ms": duration, "actor": actor},
        )
        logger.info(f"[SYNC] product={product.id} {action} listing={external_id} duration_ms={duration}")

        if unresolved:
            message = "Product synchronized with unresolved differences"
        elif action == "no_changes":
            message = "Product is up to date on the marketplace"
        else:
            message = "Product synchronized successfully"

        return ActionResult.ok(
            message,
            action=action,
            state=SyncState.SUCCEEDED.value,
            strategy=SyncStrategy.REST.value,
            external_product_id=external_id,
            listing_url=listing_url(account, external_id, client.extract_numeric_id),
            replaced_external_id=replaced_id,
            variants_synced=listing.variants_count,
            comparison=drift.to_dict() if drift is not None else None,
            prices_updated=prices_updated,
            unresolved_drift=details["unresolved_drift"],
            duration_ms=duration,
        )

    def _push_price_drift(
        self,
        client: MarketplaceClient,
        external_id: str,
        current: dict[str, Any],
        drift: DriftReport,
    ) -> dict[str, float]:
        """가격 차이를 원격 리스팅에 반영. 반영한 SKU -> 가격"""
        pricing = drift.differences.get("pricing") or {}
        if not pricing:
            return {}
        ids_by_sku = {str(v.get("sku")): v.get("id") for v in external_variants(current) if v.get("sku")}
        updates = [
            {"id": ids_by_sku[sku], "price": diff["local"], "sku": sku}
            for sku, diff in pricing.items()
            if ids_by_sku.get(sku)
        ]
        if not updates:
            return {}

        result = client.update_product_variants_pricing(updates)
        if not result.get("success"):
            raise error_from_response("Failed to update listing prices", envelope_error(result), envelope_status(result))
        logger.info(f"[SYNC] Pushed {len(updates)} price changes to listing={external_id}")
        return {u["sku"]: u["price"] for u in updates}

    # ---- GraphQL 색상 분할 ----

    def _sync_split(
        self,
        product: Product,
        account: SyncAccount,
        client: MarketplaceClient,
        options: SyncOptions,
        actor: str,
    ) -> dict[str, Any]:
        listings = self.splitter.split(product)
        summary = self.splitter.split_summary(product)
        existing = self.reconciler.color_links(product, account, linked_only=True)
        groups = self.splitter.group_by_color(list(product.variants or []))

        outcomes: dict[str, ColorOutcome] = {}
        work: list[tuple[str, ColorListing, str | None]] = []

        for color, listing in listings.items():
            link = existing.get(color)
            if link is not None and not options.force:
                outcomes[color] = ColorOutcome(
                    color=color,
                    success=True,
                    action="skipped_existing_link",
                    external_product_id=link.external_product_id,
                    reason="marketplace_link_exists",
                )
                logger.info(f"[SYNC] Skipping color '{color}' - already linked to {link.external_product_id}")
                continue

            record = link or self.reconciler.color_record(product, account, color)
            external_id = record.external_product_id if record else None
            if (
                not options.force
                and record is not None
                and external_id
                and record.link_status != LinkStatus.FAILED.value
                and not has_changes_since(product, groups.get(color, []), record.linked_at)
            ):
                outcomes[color] = ColorOutcome(
                    color=color,
                    success=True,
                    action="skipped",
                    external_product_id=external_id,
                    reason="already_synced",
                )
                continue
            work.append((color, listing, external_id))

        if work:
            workers = max(1, min(self.max_workers, len(work)))
            # 색상당 최대 원격 호출 수 x 클라이언트 타임아웃 x 실행 라운드
            budget = settings.client_timeout_seconds * REMOTE_CALLS_PER_COLOR * math.ceil(len(work) / workers)
            pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="color-sync")
            try:
                futures = {
                    pool.submit(self._remote_color, client, color, listing, external_id): color
                    for color, listing, external_id in work
                }
                for future in as_completed(futures, timeout=budget):
                    outcomes[futures[future]] = future.result()
            except FutureTimeout:
                for color, _, _ in work:
                    if color in outcomes:
                        continue
                    logger.warning(f"[SYNC] Color '{color}' timed out after {budget:.1f}s")
                    outcomes[color] = ColorOutcome(
                        color=color,
                        success=False,
                        action="failed",
                        error=f"Timed out after {budget:.1f}s waiting for color '{color}'",
                        error_kind=ErrorKind.REMOTE,
                    )
            finally:
                # 남은 작업은 기다리지 않는다
                pool.shutdown(wait=False, cancel_futures=True)

        # 모든 색상 완료 후 순서대로 기록 (fan-in)
        ordered = [outcomes[color] for color in listings]
        for outcome in ordered:
            if outcome.action in ("created", "verified"):
                details = {"action": outcome.action, "variants_created": outcome.variants_created}
                if outcome.bulk_warning:
                    details["bulk_warning"] = outcome.bulk_warning
                self.reconciler.record_color_sync(
                    product, account, outcome.color, outcome.external_product_id,
                    success=True, actor=actor, details=details,
                )
            elif not outcome.success:
                self.reconciler.record_color_sync(
                    product, account, outcome.color, None,
                    success=False, actor=actor, details={"last_error": outcome.error},
                )

        failed = sum(1 for o in ordered if not o.success)
        return {
            "outcomes": ordered,
            "split_summary": summary,
            "colors_total": len(ordered),
            "colors_newly_created": sum(1 for o in ordered if o.action == "created"),
            "colors_already_linked": sum(1 for o in ordered if o.action == "skipped_existing_link"),
            "colors_verified": sum(1 for o in ordered if o.action == "verified"),
            "colors_skipped": sum(1 for o in ordered if o.action == "skipped"),
            "colors_failed": failed,
            "colors_succeeded": len(ordered) - failed,
        }

    def _remote_color(
        self,
        client: MarketplaceClient,
        color: str,
        listing: ColorListing,
        external_id: str | None,
    ) -> ColorOutcome:
        """색상 1개에 대한 원격 호출만 수행 (세션 접근 없음)"""
        try:
            replaced_id = None
            if external_id:
                check = client.get_product(external_id)
                if check.get("success"):
                    return ColorOutcome(color=color, success=True, action="verified", external_product_id=external_id)
                message = envelope_error(check)
                kind = classify_error(message, envelope_status(check))
                if kind != ErrorKind.NOT_FOUND:
                    return ColorOutcome(color=color, success=False, action="failed", error=message, error_kind=kind)
                logger.info(f"[SYNC] Color '{color}' listing {external_id} not found, re-creating")
                replaced_id = external_id

            created = client.create_product(listing.base_payload())
            if not created.get("success"):
                message = envelope_error(created)
                return ColorOutcome(
                    color=color,
                    success=False,
                    action="failed",
                    error=f"Failed to create color listing '{color}': {message}",
                    error_kind=classify_error(message, envelope_status(created)),
                )
            new_id = created_listing_id(created)
            if not new_id:
                return ColorOutcome(
                    color=color, success=False, action="failed",
                    error="Product creation returned no listing id", error_kind=ErrorKind.REMOTE,
                )

            variants_created = 1
            bulk_warning = None
            extras = listing.extra_variants
            if extras:
                bulk = client.create_bulk_variants(new_id, extras)
                if bulk.get("success"):
                    variants_created += len(extras)
                else:
                    bulk_warning = envelope_error(bulk)
                    logger.warning(f"[SYNC] Bulk variants creation failed for color '{color}' listing={new_id}: {bulk_warning}")

            return ColorOutcome(
                color=color,
                success=True,
                action="created",
                external_product_id=new_id,
                variants_created=variants_created,
                bulk_warning=bulk_warning,
                replaced_external_id=replaced_id,
            )
        except Exception as e:
            logger.error(f"[SYNC] Color '{color}' sync raised: {e}")
            kind = e.kind if isinstance(e, SyncError) else classify_error(str(e))
            return ColorOutcome(color=color, success=False, action="failed", error=str(e), error_kind=kind)

    def _finish_split(
        self,
        product: Product,
        account: SyncAccount,
        options: SyncOptions,
        actor: str,
        started: float,
        split: dict[str, Any],
    ) -> ActionResult:
        duration = int((time.time() - started) * 1000)
        outcomes: list[ColorOutcome] = split["outcomes"]
        total = split["colors_total"]
        failed = split["colors_failed"]
        touched = split["colors_newly_created"] + split["colors_verified"] + failed

        counts = {
            key: split[key]
            for key in ("colors_total", "colors_newly_created", "colors_already_linked", "colors_verified", "colors_skipped", "colors_failed")
        }
        if failed:
            message = f"Sync partially completed: {split['colors_succeeded']} colors synced, {failed} failed"
        elif split["colors_newly_created"]:
            message = (
                f"Sync completed: {split['colors_newly_created']} new listings created, "
                f"{split['colors_already_linked']} already linked"
            )
        else:
            message = "All colors already linked - no new listings needed"

        # 원격 작업이 없었으면 기록도 남기지 않는다
        if touched:
            status = self.reconciler.mirror_links_to_status(product, account)
            if status is None:
                status = self.reconciler.find_or_create_status(product, account)
            status.health_score = int(round(100 * split["colors_succeeded"] / total))
            status.meta = {
                **(status.meta or {}),
                "color_listings": {o.color: o.external_product_id for o in outcomes if o.success and o.external_product_id},
                "last_sync": {
                    "strategy": SyncStrategy.GRAPHQL_SPLIT.value,
                    "sync_method": options.method,
                    "colors_total": total,
                    "colors_failed": failed,
                    "duration_ms": duration,
                    "at": utcnow().isoformat(),
                    "by": actor,
                },
            }
            self.session.flush()
            record_sync_log(
                self.session,
                sync_account_id=account.id,
                action="sync",
                success=True,
                product_id=product.id,
                message=message,
                details={**counts, "duration_ms": duration, "actor": actor},
            )
        logger.info(f"[SYNC] product={product.id} color split finished {counts} duration_ms={duration}")

        return ActionResult.ok(
            message,
            action="color_split" if touched else "skipped",
            state=SyncState.SUCCEEDED.value if touched else SyncState.SKIPPED.value,
            strategy=SyncStrategy.GRAPHQL_SPLIT.value,
            **counts,
            color_results={o.color: o.to_dict() for o in outcomes},
            listings_created=[o.external_product_id for o in outcomes if o.action == "created"],
            split_summary=split["split_summary"],
            duration_ms=duration,
        )

    # ---- 실패 기록 ----

    def _record_failure(
        self,
        product: Product,
        account: SyncAccount,
        exc: Exception,
        options: SyncOptions,
        actor: str,
        duration: int,
    ) -> None:
        kind = exc.kind if isinstance(exc, SyncError) else classify_error(str(exc))
        error = {
            "type": type(exc).__name__,
            "kind": kind.value,
            "message": str(exc),
            "failed_at": utcnow().isoformat(),
        }
        try:
            status = self.reconciler.mark_failed(
                product, account, error, settings.failed_health_score, actor=actor,
            )
            status.meta = {
                **(status.meta or {}),
                "last_sync": {"sync_method": options.method, "duration_ms": duration, "success": False, "by": actor},
            }
            record_sync_log(
                self.session,
                sync_account_id=account.id,
                action="sync",
                success=False,
                product_id=product.id,
                message=f"Product sync failed: {exc}",
                details={"error": error, "duration_ms": duration, "actor": actor},
            )
        except Exception as e:
            logger.error(f"[SYNC] Failed to record sync failure for product={product.id}: {e}")
