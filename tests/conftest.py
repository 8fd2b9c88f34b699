"""Pytest configuration and fixtures."""

import threading
import uuid
from typing import Any

import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from marketsync.clients.base import extract_numeric_id
from marketsync.models import CatalogBase, MarketBase, Product, SyncAccount, Variant


# 테스트용 메모리 SQLite 엔진
TEST_DATABASE_URL = "sqlite:///:memory:"

# StaticPool: TestClient 워커 스레드에서도 같은 메모리 DB를 보도록
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False  # 테스트 로그 줄이기
)

TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


def _patch_jsonb_to_json(base):
    """
    SQLite에서 JSONB를 JSON으로 변경하여 컴파일 오류 방지.
    테스트용으로만 사용.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                # JSONB → JSON으로 변경 (SQLite 호환)
                column.type = JSON()


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 새로운 메모리 DB 생성.
    """
    # JSONB → JSON 패치 (SQLite 호환)
    _patch_jsonb_to_json(CatalogBase)
    _patch_jsonb_to_json(MarketBase)

    # 모든 Base 생성
    CatalogBase.metadata.create_all(bind=test_engine)
    MarketBase.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
        session.commit()  # 테스트 성공 시 commit
    except Exception:
        session.rollback()  # 실패 시 rollback
        raise
    finally:
        session.close()
        # 모든 테이블 삭제
        MarketBase.metadata.drop_all(bind=test_engine)
        CatalogBase.metadata.drop_all(bind=test_engine)


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (실제 DB/API 필요)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")


# ---------------------------------------------------------------------------
# 가짜 마켓플레이스 클라이언트
# ---------------------------------------------------------------------------

class FakeMarketplaceClient:
    """
    메모리 기반 MarketplaceClient.
    색상 분할 시 스레드에서 호출되므로 내부 상태는 lock으로 보호한다.
    """

    def __init__(self):
        self.timeout = 10.0
        self._lock = threading.Lock()
        self._next_id = 1000
        self.listings: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        # 제목에 포함된 문자열 -> (error, status_code)
        self.create_failures: dict[str, tuple[str, int | None]] = {}
        # listing id -> (error, status_code)
        self.get_failures: dict[str, tuple[str, int | None]] = {}
        self.bulk_failure: tuple[str, int | None] | None = None
        self.pricing_failure: tuple[str, int | None] | None = None

    def _new_id(self, kind: str) -> str:
        self._next_id += 1
        return f"gid://shopify/{kind}/{self._next_id}"

    def _store_variants(self, listing: dict[str, Any], rows: list[dict[str, Any]]) -> None:
        for row in rows:
            listing["variants"].append({**row, "id": self._new_id("ProductVariant")})

    def calls_to(self, method: str) -> list[Any]:
        with self._lock:
            return [args for name, args in self.calls if name == method]

    def create_product(self, payload: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self.calls.append(("create_product", payload))
            title = payload.get("title") or ""
            for marker, (error, status_code) in self.create_failures.items():
                if marker in title:
                    return {"success": False, "error": error, "status_code": status_code}
            listing_id = self._new_id("Product")
            listing = {
                "id": listing_id,
                "title": title,
                "status": payload.get("status"),
                "options": payload.get("options") or [],
                "variants": [],
            }
            self._store_variants(listing, payload.get("variants") or [])
            self.listings[listing_id] = listing
            return {"success": True, "product": {"id": listing_id, "title": title}}

    def create_bulk_variants(self, listing_id: str, variants: list[dict[str, Any]]) -> dict[str, Any]:
        with self._lock:
            self.calls.append(("create_bulk_variants", (listing_id, variants)))
            if self.bulk_failure:
                error, status_code = self.bulk_failure
                return {"success": False, "error": error, "status_code": status_code}
            listing = self.listings.get(listing_id)
            if listing is None:
                return {"success": False, "error": "Product not found", "status_code": 404}
            self._store_variants(listing, variants)
            return {"success": True}

    def get_product(self, listing_id: str) -> dict[str, Any]:
        with self._lock:
            self.calls.append(("get_product", listing_id))
            if listing_id in self.get_failures:
                error, status_code = self.get_failures[listing_id]
                return {"success": False, "error": error, "status_code": status_code}
            listing = self.listings.get(listing_id)
            if listing is None:
                return {"success": False, "error": "Product not found", "status_code": 404}
            return {"success": True, "data": {"product": listing}}

    def get_product_variants_with_pricing(self, listing_id: str) -> dict[str, Any]:
        with self._lock:
            self.calls.append(("get_product_variants_with_pricing", listing_id))
            listing = self.listings.get(listing_id)
            if listing is None:
                return {"success": False, "error": "Product not found", "status_code": 404}
            return {"success": True, "variants": [dict(v) for v in listing["variants"]]}

    def update_product_variants_pricing(self, variant_updates: list[dict[str, Any]]) -> dict[str, Any]:
        with self._lock:
            self.calls.append(("update_product_variants_pricing", variant_updates))
            if self.pricing_failure:
                error, status_code = self.pricing_failure
                return {"success": False, "error": error, "status_code": status_code}
            by_id = {v["id"]: v for listing in self.listings.values() for v in listing["variants"]}
            for update in variant_updates:
                if update["id"] in by_id:
                    by_id[update["id"]]["price"] = f"{update['price']:.2f}"
            return {"success": True, "updated_count": len(variant_updates)}

    def extract_numeric_id(self, opaque_id: str) -> int | None:
        return extract_numeric_id(opaque_id)

    def seed_listing(self, title: str, variants: list[dict[str, Any]], status: str = "active") -> str:
        """외부에 이미 존재하는 리스팅을 만든다"""
        with self._lock:
            listing_id = self._new_id("Product")
            listing = {"id": listing_id, "title": title, "status": status, "variants": []}
            self._store_variants(listing, variants)
            self.listings[listing_id] = listing
            return listing_id


@pytest.fixture
def fake_client() -> FakeMarketplaceClient:
    return FakeMarketplaceClient()


@pytest.fixture
def client_resolver(fake_client):
    return lambda account: fake_client


# ---------------------------------------------------------------------------
# 데이터 팩토리
# ---------------------------------------------------------------------------

def build_product(
    session: Session,
    *,
    name: str = "Linen Curtain",
    colors: tuple[str, ...] = ("Red",),
    widths: tuple[int | None, ...] = (100,),
    drops: tuple[int | None, ...] = (200,),
    price: float = 50.0,
    stock: int = 5,
    attributes: dict[str, Any] | None = None,
    status: str = "active",
) -> Product:
    """색상 x 폭 x 길이 조합의 variant를 가진 상품 생성"""
    product = Product(
        name=name,
        parent_sku=f"P-{uuid.uuid4().hex[:6].upper()}",
        description="Blackout curtain",
        status=status,
        category="Curtains",
        vendor="Acme",
        meta={},
    )
    session.add(product)
    session.flush()
    for color in colors:
        for width in widths:
            for drop in drops:
                sku = f"{product.parent_sku}-{(color or 'NA')[:3].upper()}-{width}-{drop}"
                session.add(Variant(
                    product_id=product.id,
                    sku=sku,
                    color=color,
                    width=width,
                    drop=drop,
                    price=price,
                    stock_level=stock,
                    attributes=dict(attributes or {}),
                ))
    session.flush()
    session.refresh(product)
    return product


@pytest.fixture
def product_factory(test_session):
    def _factory(**kwargs) -> Product:
        return build_product(test_session, **kwargs)
    return _factory


@pytest.fixture
def shopify_account(test_session) -> SyncAccount:
    account = SyncAccount(
        channel="shopify",
        name="main-store",
        display_name="Main Store",
        is_active=True,
        store_url="my-store.myshopify.com",
        settings={},
    )
    test_session.add(account)
    test_session.flush()
    return account
