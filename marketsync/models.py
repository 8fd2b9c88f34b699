from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
import uuid

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class CatalogBase(DeclarativeBase):
    pass


class MarketBase(DeclarativeBase):
    pass


class SyncStatusValue(str, Enum):
    """레거시 SyncStatus.sync_status 값"""
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    NOT_SYNCED = "not_synced"


class LinkStatus(str, Enum):
    PENDING = "pending"
    LINKED = "linked"
    FAILED = "failed"
    UNLINKED = "unlinked"


class LinkLevel(str, Enum):
    PRODUCT = "product"
    VARIANT = "variant"


class OwnerKind(str, Enum):
    PRODUCT = "product"
    VARIANT = "variant"


@dataclass(frozen=True)
class LinkOwner:
    """MarketplaceLink 소유자 (Product 또는 Variant)"""
    kind: OwnerKind
    id: uuid.UUID

    @classmethod
    def for_product(cls, product: "Product") -> "LinkOwner":
        return cls(OwnerKind.PRODUCT, product.id)

    @classmethod
    def for_variant(cls, variant: "Variant") -> "LinkOwner":
        return cls(OwnerKind.VARIANT, variant.id)


# --------------------------------------------------------------------------
# Catalog Domain (PIM, 읽기 전용 + metadata 갱신)
# --------------------------------------------------------------------------

class Product(CatalogBase):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    parent_sku: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")  # active, inactive, discontinued
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    variants: Mapped[list["Variant"]] = relationship(
        "Variant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="Variant.sku",
    )


class Variant(CatalogBase):
    __tablename__ = "product_variants"
    __table_args__ = (UniqueConstraint("sku", name="uq_product_variants_sku"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str | None] = mapped_column(Text, nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)  # cm
    drop: Mapped[int | None] = mapped_column(Integer, nullable=True)  # cm
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # material, warranty_years, blackout_level, uv_protection, fire_retardant, child_safe,
    # base_price / channel_price / sale_price 등
    attributes: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="variants")

    def attribute(self, name: str, default: Any = None) -> Any:
        attrs = self.attributes if isinstance(self.attributes, dict) else {}
        value = attrs.get(name)
        return default if value is None else value


# --------------------------------------------------------------------------
# Market Domain (동기화 계정, 링크 추적, 감사 로그)
# --------------------------------------------------------------------------

class SyncAccount(MarketBase):
    __tablename__ = "sync_accounts"
    __table_args__ = (UniqueConstraint("channel", "name", name="uq_sync_accounts_channel_name"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel: Mapped[str] = mapped_column(Text, nullable=False)  # 'shopify', 'ebay', ...
    name: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    store_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    settings: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SyncStatus(MarketBase):
    """
    상품 x 계정 단위의 레거시 동기화 상태 (1행).
    MarketplaceLink 도입 이후에도 LinkReconciler가 양쪽을 맞춰 유지합니다.
    """
    __tablename__ = "sync_statuses"
    __table_args__ = (
        UniqueConstraint("product_id", "sync_account_id", name="uq_sync_statuses_product_account"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)  # Cross-DB: No FK
    sync_account_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sync_accounts.id"), nullable=False)
    external_product_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_variant_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_status: Mapped[str] = mapped_column(Text, nullable=False, default=SyncStatusValue.PENDING.value)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    health_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    meta: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    sync_account: Mapped["SyncAccount"] = relationship("SyncAccount")


class MarketplaceLink(MarketBase):
    """
    상품/Variant와 외부 리스팅 간의 링크.
    marketplace_data["color_filter"]가 있으면 색상 분할 리스팅 1개에 대응합니다.
    """
    __tablename__ = "marketplace_links"
    __table_args__ = (
        Index("ix_marketplace_links_product_account", "product_id", "sync_account_id"),
        Index("ix_marketplace_links_owner", "owner_kind", "owner_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_kind: Mapped[str] = mapped_column(Text, nullable=False)  # product, variant
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)  # 소유 상품 (Variant 링크 포함)
    sync_account_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sync_accounts.id"), nullable=False)
    parent_link_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("marketplace_links.id"), nullable=True)
    internal_sku: Mapped[str] = mapped_column(Text, nullable=False, default="NO-SKU")
    external_sku: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_product_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_variant_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    link_level: Mapped[str] = mapped_column(Text, nullable=False, default=LinkLevel.PRODUCT.value)
    link_status: Mapped[str] = mapped_column(Text, nullable=False, default=LinkStatus.PENDING.value)
    marketplace_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    linked_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    sync_account: Mapped["SyncAccount"] = relationship("SyncAccount")

    @property
    def owner(self) -> LinkOwner:
        return LinkOwner(OwnerKind(self.owner_kind), self.owner_id)

    @property
    def color_filter(self) -> str | None:
        data = self.marketplace_data if isinstance(self.marketplace_data, dict) else {}
        return data.get("color_filter") or None

    @property
    def is_active(self) -> bool:
        return self.link_status != LinkStatus.UNLINKED.value


class SyncLog(MarketBase):
    """감사 로그 (append-only)"""
    __tablename__ = "sync_logs"
    __table_args__ = (
        Index("ix_sync_logs_product_account", "product_id", "sync_account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sync_account_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sync_accounts.id"), nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)  # sync, link, unlink, color_refresh, sync_systems, ...
    product_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    variant_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)  # success, failure
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
