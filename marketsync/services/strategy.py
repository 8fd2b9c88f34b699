from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from marketsync.models import Product
from marketsync.services.color_splitter import color_key
from marketsync.settings import settings


class SyncStrategy(str, Enum):
    REST = "rest"
    GRAPHQL_SPLIT = "graphql_split"


@dataclass(frozen=True)
class ProductShape:
    variant_count: int
    color_count: int


def analyze_product(product: Product) -> ProductShape:
    variants = list(product.variants or [])
    # 분할기와 같은 키로 색상을 센다 (공백 제거, 빈 값은 Default)
    colors = {color_key(v) for v in variants}
    return ProductShape(variant_count=len(variants), color_count=len(colors))


def select_strategy(
    shape: ProductShape,
    force_graphql: bool = False,
    force_rest: bool = False,
) -> SyncStrategy:
    """
    REST / GraphQL(색상 분할) 전략 선택.

    명시적 강제 옵션이 우선이며, 그 외에는 리스팅당 variant 한도에 근접하거나
    색상 수가 많으면 색상별로 분할합니다.
    """
    if force_graphql:
        return SyncStrategy.GRAPHQL_SPLIT
    if force_rest:
        return SyncStrategy.REST

    if shape.variant_count > settings.graphql_variant_threshold:
        return SyncStrategy.GRAPHQL_SPLIT
    if shape.color_count > 1 and shape.variant_count > settings.multi_color_variant_threshold:
        return SyncStrategy.GRAPHQL_SPLIT
    if shape.color_count > settings.max_colors_before_split:
        return SyncStrategy.GRAPHQL_SPLIT
    return SyncStrategy.REST


def can_fallback_to_rest(shape: ProductShape) -> bool:
    return shape.variant_count <= settings.listing_variant_ceiling
