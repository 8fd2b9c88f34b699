"""
전략 선택 단위 테스트.
"""

import pytest

from marketsync.models import Product, Variant
from marketsync.services.strategy import (
    ProductShape,
    SyncStrategy,
    analyze_product,
    can_fallback_to_rest,
    select_strategy,
)


@pytest.mark.unit
class TestSelectStrategy:
    """임계값 기반 REST / 색상 분할 선택."""

    def test_small_single_color_uses_rest(self):
        assert select_strategy(ProductShape(variant_count=20, color_count=1)) == SyncStrategy.REST

    def test_many_variants_split(self):
        """80개 초과면 색상 분할."""
        assert select_strategy(ProductShape(variant_count=81, color_count=1)) == SyncStrategy.GRAPHQL_SPLIT
        assert select_strategy(ProductShape(variant_count=80, color_count=1)) == SyncStrategy.REST

    def test_multi_color_over_fifty_split(self):
        assert select_strategy(ProductShape(variant_count=51, color_count=2)) == SyncStrategy.GRAPHQL_SPLIT
        assert select_strategy(ProductShape(variant_count=50, color_count=2)) == SyncStrategy.REST

    def test_many_colors_split(self):
        """색상 4개 이상이면 variant 수와 무관하게 분할."""
        assert select_strategy(ProductShape(variant_count=8, color_count=4)) == SyncStrategy.GRAPHQL_SPLIT
        assert select_strategy(ProductShape(variant_count=8, color_count=3)) == SyncStrategy.REST

    def test_force_graphql_wins(self):
        shape = ProductShape(variant_count=1, color_count=1)
        assert select_strategy(shape, force_graphql=True) == SyncStrategy.GRAPHQL_SPLIT
        assert select_strategy(shape, force_graphql=True, force_rest=True) == SyncStrategy.GRAPHQL_SPLIT

    def test_force_rest(self):
        shape = ProductShape(variant_count=300, color_count=6)
        assert select_strategy(shape, force_rest=True) == SyncStrategy.REST


@pytest.mark.unit
class TestProductShape:

    def test_analyze_counts_distinct_colors(self):
        product = Product(name="Curtain", variants=[
            Variant(sku="A", color="Red"),
            Variant(sku="B", color="Red"),
            Variant(sku="C", color="Blue"),
            Variant(sku="D", color=None),
        ])
        shape = analyze_product(product)
        assert shape.variant_count == 4
        assert shape.color_count == 3

    def test_blank_and_padded_colors_count_once(self):
        """None/빈 문자열은 같은 Default 그룹, 앞뒤 공백은 무시."""
        variants = [Variant(sku=f"N{i}", color=None) for i in range(30)]
        variants += [Variant(sku=f"E{i}", color="") for i in range(30)]
        product = Product(name="Curtain", variants=variants)

        shape = analyze_product(product)
        assert shape == ProductShape(variant_count=60, color_count=1)
        assert select_strategy(shape) == SyncStrategy.REST

        padded = Product(name="Curtain", variants=[Variant(sku="A", color="Red"), Variant(sku="B", color="Red ")])
        assert analyze_product(padded).color_count == 1

    def test_empty_product(self):
        assert analyze_product(Product(name="Empty", variants=[])) == ProductShape(0, 0)

    def test_rest_fallback_ceiling(self):
        assert can_fallback_to_rest(ProductShape(variant_count=100, color_count=4)) is True
        assert can_fallback_to_rest(ProductShape(variant_count=101, color_count=4)) is False
