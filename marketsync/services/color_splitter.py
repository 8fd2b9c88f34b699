"""
색상 기준 상품 분할.

PIM 상품 1개를 색상별 외부 리스팅 payload로 나눕니다. 색상은 option1로 고정되고
폭(Width)/길이(Drop)는 각 리스팅 안의 옵션으로 남습니다.
REST 경로에서는 같은 규칙으로 상품 전체를 리스팅 1개로 만듭니다 (whole_listing).
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from marketsync.models import Product, Variant

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "Default"


@dataclass
class ColorListing:
    color: str
    title: str
    payload: dict[str, Any]
    variant_rows: list[dict[str, Any]]
    variant_skus: list[str] = field(default_factory=list)

    @property
    def variants_count(self) -> int:
        return len(self.variant_rows)

    @property
    def base_variant(self) -> dict[str, Any] | None:
        return self.variant_rows[0] if self.variant_rows else None

    @property
    def extra_variants(self) -> list[dict[str, Any]]:
        return self.variant_rows[1:]

    def base_payload(self) -> dict[str, Any]:
        """기본 variant 1개만 포함한 생성 payload (나머지는 bulk 생성)"""
        payload = dict(self.payload)
        payload["variants"] = self.variant_rows[:1]
        return payload


def color_key(variant: Variant) -> str:
    color = (variant.color or "").strip()
    return color or DEFAULT_COLOR


def _cm(value: int | float | None) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}cm"


def _format_price(value: float | None) -> str:
    return f"{float(value or 0):.2f}"


def option_names_for(variants: list[Variant]) -> list[str]:
    names = ["Color"]
    if any(v.width is not None for v in variants):
        names.append("Width")
    if any(v.drop is not None for v in variants):
        names.append("Drop")
    return names


def option_values(variant: Variant, option_names: list[str]) -> dict[str, str]:
    """{"option1": ..., "option2": ...} - 위치는 리스팅 옵션 순서를 따른다"""
    values = {"Color": color_key(variant), "Width": _cm(variant.width), "Drop": _cm(variant.drop)}
    result = {}
    for position, name in enumerate(option_names, start=1):
        value = values.get(name)
        if value:
            result[f"option{position}"] = value
    return result


class ColorSplitter:
    def group_by_color(self, variants: list[Variant]) -> dict[str, list[Variant]]:
        groups: dict[str, list[Variant]] = {}
        for variant in variants:
            groups.setdefault(color_key(variant), []).append(variant)
        return {color: items for color, items in groups.items() if items}

    def split(self, product: Product) -> dict[str, ColorListing]:
        started = time.time()
        variants = list(product.variants or [])
        groups = self.group_by_color(variants)

        if not groups:
            logger.warning(f"[SPLIT] No color variants found for product {product.id}")
            return {}

        listings: dict[str, ColorListing] = {}
        for color, items in groups.items():
            listings[color] = self._build_listing(product, items, color)
            logger.debug(f"[SPLIT] product={product.id} color={color} variants={len(items)}")

        logger.info(
            f"[SPLIT] product={product.id} colors={list(listings)} "
            f"duration_ms={int((time.time() - started) * 1000)}"
        )
        return listings

    def whole_listing(self, product: Product) -> ColorListing | None:
        variants = list(product.variants or [])
        if not variants:
            return None
        return self._build_listing(product, variants, None)

    def split_summary(self, product: Product) -> dict[str, Any]:
        variants = list(product.variants or [])
        groups = self.group_by_color(variants)
        breakdown = {}
        for color, items in groups.items():
            widths = {v.width for v in items if v.width is not None}
            drops = {v.drop for v in items if v.drop is not None}
            breakdown[color] = {
                "variants_count": len(items),
                "has_width": bool(widths),
                "has_drop": bool(drops),
                "width_options": len(widths),
                "drop_options": len(drops),
            }
        return {
            "product_id": str(product.id),
            "product_name": product.name,
            "total_variants": len(variants),
            "colors_found": len(groups),
            "listings_needed": len(groups),
            "split_recommended": len(groups) > 1 or len(variants) > 50,
            "color_breakdown": breakdown,
        }

    def listing_title(self, base_title: str, color: str | None) -> str:
        if not color or color == DEFAULT_COLOR or color.lower() in base_title.lower():
            return base_title
        return f"{base_title} - {color}"

    def _build_listing(self, product: Product, variants: list[Variant], color: str | None) -> ColorListing:
        title = self.listing_title(product.name, color)
        options = self._options(variants)
        option_names = [opt["name"] for opt in options]
        rows = [self._variant_row(v, option_names) for v in variants]
        payload = {
            "title": title,
            "body_html": self._description(product, color),
            "vendor": product.vendor or "",
            "product_type": product.category or "",
            "status": "draft",
            "tags": self._tags(product, color),
            "options": options,
            "variants": rows,
        }
        return ColorListing(
            color=color or "",
            title=title,
            payload=payload,
            variant_rows=rows,
            variant_skus=[v.sku for v in variants],
        )

    def _description(self, product: Product, color: str | None) -> str:
        base = product.description or ""
        if not color or color == DEFAULT_COLOR:
            return base
        return f"Available in {color}. {base}"

    def _tags(self, product: Product, color: str | None) -> list[str]:
        tags: list[str] = []
        if color and color != DEFAULT_COLOR:
            tags.extend([color, f"Color:{color}"])
        if product.category:
            tags.append(product.category)
        # 순서 유지 중복 제거
        return list(dict.fromkeys(t for t in tags if t))

    def _options(self, variants: list[Variant]) -> list[dict[str, Any]]:
        colors = list(dict.fromkeys(color_key(v) for v in variants))
        options: list[dict[str, Any]] = [{"name": "Color", "values": colors}]
        widths = sorted({v.width for v in variants if v.width is not None})
        if widths:
            options.append({"name": "Width", "values": [_cm(w) for w in widths]})
        drops = sorted({v.drop for v in variants if v.drop is not None})
        if drops:
            options.append({"name": "Drop", "values": [_cm(d) for d in drops]})
        return options

    def _variant_row(self, variant: Variant, option_names: list[str]) -> dict[str, Any]:
        row: dict[str, Any] = {
            "sku": variant.sku,
            "price": _format_price(variant.price),
            "inventory_management": "shopify",
            "inventory_quantity": variant.stock_level or 0,
        }
        values = option_values(variant, option_names)
        row.update(values)
        row["title"] = " / ".join(values.values())
        return row
