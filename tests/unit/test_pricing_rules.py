"""
가격 보정 규칙 단위 테스트.
"""

import pytest

from marketsync.models import Variant
from marketsync.services.pricing_updater import (
    PricingSource,
    apply_modifiers,
    is_premium_material,
    resolve_price,
    round_price,
    source_price,
)


def _variant(price=100.0, **attributes):
    return Variant(sku="S-1", price=price, attributes=attributes)


@pytest.mark.unit
class TestSourcePrice:

    def test_base_price_attribute_preferred(self):
        assert source_price(_variant(price=90, base_price="100"), PricingSource.BASE_PRICE) == 100.0

    def test_falls_back_to_variant_price(self):
        assert source_price(_variant(price=90), PricingSource.BASE_PRICE) == 90.0

    def test_channel_price_falls_back_to_base(self):
        assert source_price(_variant(base_price=100), PricingSource.CHANNEL_PRICE) == 100.0
        assert source_price(_variant(base_price=100, channel_price=110), PricingSource.CHANNEL_PRICE) == 110.0

    def test_sale_price(self):
        assert source_price(_variant(base_price=100, sale_price="80"), PricingSource.SALE_PRICE) == 80.0

    def test_no_price(self):
        assert source_price(_variant(price=None), PricingSource.BASE_PRICE) is None
        assert resolve_price(_variant(price=None), PricingSource.BASE_PRICE) is None


@pytest.mark.unit
class TestModifiers:

    def test_premium_material(self):
        variant = _variant(material="Silk")
        assert is_premium_material(variant) is True
        assert apply_modifiers(variant, 100.0) == 115.0

    def test_material_multiplier_override(self):
        assert apply_modifiers(_variant(material="linen", material_price_multiplier=1.3), 100.0) == 130.0

    def test_plain_material(self):
        assert apply_modifiers(_variant(material="polyester"), 100.0) == 100.0

    @pytest.mark.parametrize("attributes", [
        {"blackout_level": "total"},
        {"uv_protection": True},
        {"fire_retardant": "yes"},
        {"child_safe": 1},
    ])
    def test_special_features(self, attributes):
        assert apply_modifiers(_variant(**attributes), 100.0) == 110.0

    def test_false_text_is_not_a_feature(self):
        assert apply_modifiers(_variant(uv_protection="false", blackout_level="partial"), 100.0) == 100.0

    def test_warranty_over_base_years(self):
        assert apply_modifiers(_variant(warranty_years=4), 100.0) == 110.0
        assert apply_modifiers(_variant(warranty_years=2), 100.0) == 100.0

    def test_modifiers_stack_in_order(self):
        """소재 -> 특수 기능 -> 보증 순서로 곱한다."""
        variant = _variant(material="silk", uv_protection=True, warranty_years=3)
        assert apply_modifiers(variant, 100.0) == round_price(100 * 1.15 * 1.10 * 1.05)

    def test_round_half_up(self):
        assert round_price(10.005) == 10.01
        assert round_price(10.004) == 10.0
