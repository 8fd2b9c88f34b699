"""
연결된 색상 리스팅의 variant 가격 갱신.

새 링크는 만들지 않으며, 활성 색상 링크가 있는 색상의 variant만 대상입니다.
리스팅당 variant 조회 1회, 가격 일괄 갱신 1회.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Callable

from sqlalchemy.orm import Session

from marketsync.clients.base import MarketplaceClient, envelope_error, envelope_status
from marketsync.clients.registry import client_for_account
from marketsync.models import Product, SyncAccount, Variant
from marketsync.services.audit import record_sync_log
from marketsync.services.color_splitter import ColorSplitter
from marketsync.services.comparator import external_variants
from marketsync.services.link_reconciler import SYSTEM_ACTOR, LinkReconciler
from marketsync.services.results import ActionResult, ErrorKind, classify_error
from marketsync.settings import settings

logger = logging.getLogger(__name__)

PRICING_CHANNEL = "shopify"

_FALSY_TEXT = {"", "0", "false", "no", "off", "none"}


class PricingSource(str, Enum):
    BASE_PRICE = "base_price"
    CHANNEL_PRICE = "channel_price"
    SALE_PRICE = "sale_price"


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_TEXT
    return bool(value)


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def round_price(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def source_price(variant: Variant, source: PricingSource) -> float | None:
    """가격 출처별 기준가. 가격 속성이 없으면 variant.price"""
    base = _as_float(variant.attribute("base_price"))
    if source == PricingSource.CHANNEL_PRICE:
        price = _as_float(variant.attribute("channel_price"))
        price = base if price is None else price
    elif source == PricingSource.SALE_PRICE:
        price = _as_float(variant.attribute("sale_price"))
        price = base if price is None else price
    else:
        price = base
    if price is None:
        price = _as_float(variant.price)
    return price


def is_premium_material(variant: Variant) -> bool:
    material = variant.attribute("material")
    return bool(material) and str(material).strip().lower() in settings.premium_materials


def has_special_features(variant: Variant) -> bool:
    return (
        str(variant.attribute("blackout_level") or "").lower() == "total"
        or _truthy(variant.attribute("uv_protection"))
        or _truthy(variant.attribute("fire_retardant"))
        or _truthy(variant.attribute("child_safe"))
    )


def apply_modifiers(variant: Variant, price: float) -> float:
    """소재 -> 특수 기능 -> 보증기간 순서로 배수 적용 후 소수 2자리 반올림"""
    if is_premium_material(variant):
        multiplier = _as_float(variant.attribute("material_price_multiplier"))
        price *= multiplier if multiplier is not None else settings.premium_material_multiplier

    if has_special_features(variant):
        multiplier = _as_float(variant.attribute("features_price_multiplier"))
        price *= multiplier if multiplier is not None else settings.feature_multiplier

    years = _as_float(variant.attribute("warranty_years"))
    if years is not None and years > settings.warranty_base_years:
        price *= 1 + settings.warranty_step_rate * (years - settings.warranty_base_years)

    return round_price(price)


def resolve_price(variant: Variant, source: PricingSource) -> float | None:
    price = source_price(variant, source)
    if price is None:
        return None
    return apply_modifiers(variant, price)


@dataclass
class ListingPricing:
    color: str
    external_product_id: str
    variants: list[Variant]


class PricingUpdater:
    def __init__(
        self,
        session: Session,
        client_resolver: Callable[[SyncAccount], MarketplaceClient] = client_for_account,
    ):
        self.session = session
        self.client_resolver = client_resolver
        self.reconciler = LinkReconciler(session)
        self.splitter = ColorSplitter()

    def _targets(self, product: Product, account: SyncAccount) -> list[ListingPricing]:
        links = self.reconciler.color_links(product, account, linked_only=True)
        groups = self.splitter.group_by_color(list(product.variants or []))
        targets = []
        for color, link in links.items():
            if not link.external_product_id:
                logger.warning(f"[PRICING] Skipping link {link.id} with no external product id")
                continue
            variants = groups.get(color, [])
            if not variants:
                logger.info(f"[PRICING] No variants found for color '{color}' on product={product.id}")
                continue
            targets.append(ListingPricing(color=color, external_product_id=link.external_product_id, variants=variants))
        return targets

    def _update_listing(self, client: MarketplaceClient, target: ListingPricing, source: PricingSource) -> dict[str, Any]:
        fetched = client.get_product_variants_with_pricing(target.external_product_id)
        if not fetched.get("success"):
            message = envelope_error(fetched)
            logger.warning(f"[PRICING] Failed to fetch variants for listing={target.external_product_id}: {message}")
            return {
                "success": False,
                "error": f"Failed to fetch listing variants: {message}",
                "error_kind": classify_error(message, envelope_status(fetched)).value,
                "updated_count": 0,
            }

        ids_by_sku = {
            str(v.get("sku")): v.get("id")
            for v in external_variants({"variants": fetched.get("variants") or []})
            if v.get("sku")
        }

        updates: list[dict[str, Any]] = []
        unmatched: list[str] = []
        for variant in target.variants:
            price = resolve_price(variant, source)
            if price is None:
                logger.info(f"[PRICING] Skipping variant {variant.sku} with no {source.value}")
                continue
            external_variant_id = ids_by_sku.get(variant.sku)
            if not external_variant_id:
                unmatched.append(variant.sku)
                continue
            updates.append({"id": external_variant_id, "price": price, "sku": variant.sku})

        if unmatched:
            logger.warning(f"[PRICING] {len(unmatched)} SKUs not found in listing={target.external_product_id}")

        if not updates:
            return {
                "success": False,
                "error": f"No valid variants found to update for color '{target.color}'",
                "updated_count": 0,
                "unmatched_skus": unmatched,
            }

        result = client.update_product_variants_pricing(updates)
        if not result.get("success"):
            message = envelope_error(result)
            return {
                "success": False,
                "error": message,
                "error_kind": classify_error(message, envelope_status(result)).value,
                "updated_count": 0,
                "unmatched_skus": unmatched,
            }

        updated = int(result.get("updated_count") or len(updates))
        logger.info(f"[PRICING] Updated {updated} variants for color '{target.color}' listing={target.external_product_id}")
        return {
            "success": True,
            "updated_count": updated,
            "external_product_id": target.external_product_id,
            "prices": {u["sku"]: u["price"] for u in updates},
            "unmatched_skus": unmatched,
        }

    def update_pricing(
        self,
        product: Product | None,
        account: SyncAccount | None,
        pricing_source: str = PricingSource.BASE_PRICE.value,
        actor: str = SYSTEM_ACTOR,
    ) -> ActionResult:
        if product is None:
            return ActionResult.fail("Product not found", kind=ErrorKind.VALIDATION)
        if account is None or account.channel != PRICING_CHANNEL or not account.is_active:
            return ActionResult.fail("Valid Shopify sync account is required", kind=ErrorKind.VALIDATION)
        try:
            source = PricingSource(pricing_source)
        except ValueError:
            return ActionResult.fail(f"Unknown pricing source '{pricing_source}'", kind=ErrorKind.VALIDATION)

        logger.info(f"[PRICING] Starting pricing update product={product.id} account={account.name} source={source.value}")
        started = time.time()

        try:
            targets = self._targets(product, account)
            if not targets:
                return ActionResult.fail(
                    "No active color links found for this product. Link colors first.",
                    kind=ErrorKind.VALIDATION,
                )

            client = self.client_resolver(account)
            color_results: dict[str, dict[str, Any]] = {}
            variants_updated = 0
            colors_failed = 0
            for target in targets:
                outcome = self._update_listing(client, target, source)
                color_results[target.color] = outcome
                if outcome["success"]:
                    variants_updated += outcome["updated_count"]
                else:
                    colors_failed += 1

            duration = int((time.time() - started) * 1000)
            colors_updated = len(targets) - colors_failed
            summary = {
                "variants_updated": variants_updated,
                "colors_updated": colors_updated,
                "colors_failed": colors_failed,
                "pricing_source": source.value,
                "duration_ms": duration,
            }

            success = colors_updated > 0
            if success and colors_failed == 0:
                message = f"Successfully updated pricing for {variants_updated} variants across {colors_updated} colors"
            elif success:
                message = f"Pricing update partially completed: {variants_updated} variants updated, {colors_failed} colors failed"
            else:
                message = f"Pricing update failed for all {colors_failed} colors"

            record_sync_log(
                self.session,
                sync_account_id=account.id,
                action="pricing_update",
                success=success,
                product_id=product.id,
                message=message,
                details={**summary, "actor": actor},
            )
            logger.info(f"[PRICING] product={product.id} {summary}")

            if not success:
                kinds = {r.get("error_kind") for r in color_results.values()}
                kind = ErrorKind(kinds.pop()) if len(kinds) == 1 and None not in kinds else ErrorKind.REMOTE
                return ActionResult.fail(message, kind=kind, **summary, color_results=color_results)
            return ActionResult.ok(message, **summary, color_results=color_results)
        except Exception as e:
            logger.error(f"[PRICING] Pricing update failed for product={product.id}: {e}")
            return ActionResult.from_error("Pricing update failed", e, product_id=str(product.id))
