"""
내부 상품 데이터와 마지막으로 조회한 외부 리스팅 데이터 비교 (drift 감지).

가중치: 제목 1, 상태 1, variant 가격 2(건당), variant 수 1, 누락 variant 1(건당),
재고 1(건당), 옵션 1(건당). 합계는 10에서 잘라냅니다.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from marketsync.models import Product, Variant
from marketsync.services.color_splitter import option_names_for, option_values

logger = logging.getLogger(__name__)

MAX_DRIFT_SCORE = 10.0
PRICE_TOLERANCE = 0.01

WEIGHT_TITLE = 1
WEIGHT_STATUS = 1
WEIGHT_PRICE = 2
WEIGHT_VARIANT_COUNT = 1
WEIGHT_MISSING_VARIANT = 1
WEIGHT_STOCK = 1
WEIGHT_OPTIONS = 1

# 내부 상품 상태 -> 외부 리스팅 상태
EXTERNAL_STATUS = {
    "active": "active",
    "inactive": "draft",
    "discontinued": "archived",
}


class DriftSeverity(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_RECOMMENDATIONS = {
    DriftSeverity.NONE: "No sync required - data is perfectly aligned",
    DriftSeverity.LOW: "Low priority sync - minor differences detected",
    DriftSeverity.MEDIUM: "Sync recommended - moderate differences detected",
    DriftSeverity.HIGH: "High priority sync recommended - significant differences found",
    DriftSeverity.CRITICAL: "Urgent sync required - critical data differences detected",
}


def severity_for(score: float) -> DriftSeverity:
    if score >= 8:
        return DriftSeverity.CRITICAL
    if score >= 5:
        return DriftSeverity.HIGH
    if score >= 2:
        return DriftSeverity.MEDIUM
    if score > 0:
        return DriftSeverity.LOW
    return DriftSeverity.NONE


@dataclass
class DriftReport:
    drift_score: float
    severity: DriftSeverity
    differences: dict[str, Any] = field(default_factory=dict)
    raw_score: float = 0.0
    compared_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def needs_sync(self) -> bool:
        return self.drift_score > 0

    @property
    def recommendation(self) -> str:
        return _RECOMMENDATIONS[self.severity]

    @classmethod
    def clean(cls) -> "DriftReport":
        return cls(drift_score=0.0, severity=DriftSeverity.NONE)

    @classmethod
    def merge(cls, reports: dict[str, "DriftReport"]) -> "DriftReport":
        """색상별 리포트 합치기: 점수는 최댓값, 차이는 색상 키로 보존"""
        if not reports:
            return cls.clean()
        worst = max(reports.values(), key=lambda r: r.drift_score)
        differences = {key: r.differences for key, r in reports.items() if r.differences}
        return cls(
            drift_score=worst.drift_score,
            severity=worst.severity,
            differences=differences,
            raw_score=sum(r.raw_score for r in reports.values()),
        )

    def without_pricing(self, skus: set[str] | list[str]) -> "DriftReport":
        """원격에 반영한 SKU의 가격 차이를 뺀 잔여 리포트"""
        pushed = set(skus)
        pricing = self.differences.get("pricing") or {}
        remaining = {sku: diff for sku, diff in pricing.items() if sku not in pushed}
        differences = {key: value for key, value in self.differences.items() if key != "pricing"}
        if remaining:
            differences["pricing"] = remaining
        raw = max(0.0, self.raw_score - WEIGHT_PRICE * (len(pricing) - len(remaining)))
        drift = min(raw, MAX_DRIFT_SCORE)
        return DriftReport(drift_score=drift, severity=severity_for(drift), differences=differences, raw_score=raw)

    def to_dict(self) -> dict[str, Any]:
        return {
            "needs_sync": self.needs_sync,
            "drift_score": self.drift_score,
            "drift_severity": self.severity.value,
            "differences": self.differences,
            "comparison_timestamp": self.compared_at.isoformat(),
            "recommendation": self.recommendation,
        }


def external_variants(external: dict[str, Any]) -> list[dict[str, Any]]:
    """REST(list) / GraphQL(edges.node) 양쪽 형태의 variant 목록을 평탄화"""
    raw = external.get("variants") or []
    if isinstance(raw, dict):
        raw = raw.get("edges") or raw.get("nodes") or []
    items = []
    for item in raw:
        if isinstance(item, dict) and isinstance(item.get("node"), dict):
            item = item["node"]
        if isinstance(item, dict):
            items.append(item)
    return items


def _stock(variant: dict[str, Any]) -> int:
    for key in ("inventory_quantity", "inventoryQuantity"):
        if variant.get(key) is not None:
            try:
                return int(variant[key])
            except (TypeError, ValueError):
                return 0
    return 0


def _price(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _external_options(variant: dict[str, Any]) -> dict[str, str]:
    options = {}
    for position in (1, 2, 3):
        value = variant.get(f"option{position}")
        if value:
            options[f"option{position}"] = str(value)
    if not options and isinstance(variant.get("selectedOptions"), list):
        for position, opt in enumerate(variant["selectedOptions"], start=1):
            if isinstance(opt, dict) and opt.get("value"):
                options[f"option{position}"] = str(opt["value"])
    return options


class DataComparator:
    def compare(
        self,
        product: Product,
        external: dict[str, Any],
        variants: list[Variant] | None = None,
        expected_title: str | None = None,
    ) -> DriftReport:
        """
        상품(또는 색상 subset)과 외부 리스팅을 비교합니다.

        Args:
            variants: 비교할 내부 variant (None이면 상품 전체)
            expected_title: 색상 리스팅처럼 제목이 상품명과 다른 경우의 기대 제목
        """
        local_variants = list(product.variants or []) if variants is None else list(variants)
        ext_variants = external_variants(external or {})
        ext_by_sku = {str(v.get("sku")): v for v in ext_variants if v.get("sku")}

        differences: dict[str, Any] = {}
        score = 0.0

        title = expected_title or product.name
        ext_title = (external or {}).get("title") or ""
        if title != ext_title:
            differences["title"] = {"local": title, "external": ext_title}
            score += WEIGHT_TITLE

        expected_status = EXTERNAL_STATUS.get(product.status, "draft")
        ext_status = str((external or {}).get("status") or "").lower()
        if expected_status != ext_status:
            differences["status"] = {"local": product.status, "external": ext_status, "expected_external": expected_status}
            score += WEIGHT_STATUS

        if len(local_variants) != len(ext_variants):
            differences["variant_count"] = {"local": len(local_variants), "external": len(ext_variants)}
            score += WEIGHT_VARIANT_COUNT

        option_names = option_names_for(local_variants)
        pricing: dict[str, Any] = {}
        inventory: dict[str, Any] = {}
        options: dict[str, Any] = {}
        missing: list[str] = []

        for variant in local_variants:
            match = ext_by_sku.get(variant.sku)
            if match is None:
                missing.append(variant.sku)
                continue

            local_price = _price(variant.price)
            ext_price = _price(match.get("price"))
            if abs(local_price - ext_price) > PRICE_TOLERANCE:
                pricing[variant.sku] = {
                    "local": local_price,
                    "external": ext_price,
                    "difference": round(local_price - ext_price, 2),
                }

            local_stock = variant.stock_level or 0
            ext_stock = _stock(match)
            if local_stock != ext_stock:
                inventory[variant.sku] = {"local": local_stock, "external": ext_stock, "difference": local_stock - ext_stock}

            expected = option_values(variant, option_names)
            actual = _external_options(match)
            if expected != actual:
                options[variant.sku] = {"local": expected, "external": actual}

        if pricing:
            differences["pricing"] = pricing
            score += WEIGHT_PRICE * len(pricing)
        if inventory:
            differences["inventory"] = inventory
            score += WEIGHT_STOCK * len(inventory)
        if options:
            differences["options"] = options
            score += WEIGHT_OPTIONS * len(options)
        if missing:
            differences["missing_variants"] = missing
            score += WEIGHT_MISSING_VARIANT * len(missing)

        drift = min(score, MAX_DRIFT_SCORE)
        report = DriftReport(drift_score=drift, severity=severity_for(drift), differences=differences, raw_score=score)
        logger.info(f"[COMPARE] product={product.id} drift_score={drift} severity={report.severity.value}")
        return report
