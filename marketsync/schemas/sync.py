from datetime import datetime
from typing import Any, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from marketsync.services.pricing_updater import PricingSource


class BulkSyncRequest(BaseModel):
    sync_account_id: uuid.UUID
    product_ids: List[uuid.UUID] = Field(min_length=1)
    force: bool = False
    force_graphql: bool = False
    force_rest: bool = False
    stop_on_failure: bool = False
    method: str = "api"
    actor: str = "system"

    @field_validator("force_rest")
    @classmethod
    def validate_forced_strategy(cls, v: bool, info: ValidationInfo) -> bool:
        if v and info.data.get("force_graphql"):
            raise ValueError("force_graphql와 force_rest는 동시에 지정할 수 없습니다")
        return v


class BulkStatusRequest(BaseModel):
    sync_account_id: uuid.UUID
    product_ids: List[uuid.UUID] = Field(min_length=1)


class AccountActionRequest(BaseModel):
    """상품 단위 요청 (reconcile, unlink)"""
    sync_account_id: uuid.UUID
    actor: str = "system"


class PricingRequest(AccountActionRequest):
    pricing_source: str = PricingSource.BASE_PRICE.value

    @field_validator("pricing_source")
    @classmethod
    def validate_pricing_source(cls, v: str) -> str:
        allowed = [s.value for s in PricingSource]
        if v not in allowed:
            raise ValueError(f"pricing_source는 {allowed} 중 하나여야 합니다")
        return v


class ActionResultResponse(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] = {}
    error: Optional[str] = None
    error_kind: Optional[str] = None


class MarketplaceLinkResponse(BaseModel):
    id: uuid.UUID
    owner_kind: str
    owner_id: uuid.UUID
    sync_account_id: uuid.UUID
    internal_sku: str
    external_product_id: Optional[str] = None
    external_variant_id: Optional[str] = None
    link_level: str
    link_status: str
    color_filter: Optional[str] = None
    linked_at: Optional[datetime] = None
    linked_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
