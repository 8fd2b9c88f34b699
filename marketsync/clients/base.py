"""
마켓플레이스 API 클라이언트 계약.

실제 HTTP/GraphQL 전송 구현은 이 패키지의 범위 밖이며, 동기화 엔진은 아래
Protocol만 의존합니다. 모든 메서드는 동기 요청/응답이고 정규화된 envelope(dict)를
반환합니다. 실패 시 플랫폼 status code와 본문을 그대로 `status_code`/`error`에 담습니다.

    create_product(payload)                    -> {"success", "product" | "error"}
    create_bulk_variants(listing_id, variants) -> {"success", "error"?}
    get_product(listing_id)                    -> {"success", "data" | "error"}
    get_product_variants_with_pricing(id)      -> {"success", "variants" | "error"}
    update_product_variants_pricing(updates)   -> {"success", "updated_count", "error"?}
    extract_numeric_id(opaque_id)              -> int | None
"""
from __future__ import annotations

import re
from typing import Any, Protocol


_GID_RE = re.compile(r"/(?:Product|ProductVariant)/(\d+)$")


class MarketplaceClient(Protocol):
    timeout: float

    def create_product(self, payload: dict[str, Any]) -> dict[str, Any]:
        ...

    def create_bulk_variants(self, listing_id: str, variants: list[dict[str, Any]]) -> dict[str, Any]:
        ...

    def get_product(self, listing_id: str) -> dict[str, Any]:
        ...

    def get_product_variants_with_pricing(self, listing_id: str) -> dict[str, Any]:
        ...

    def update_product_variants_pricing(self, variant_updates: list[dict[str, Any]]) -> dict[str, Any]:
        ...

    def extract_numeric_id(self, opaque_id: str) -> int | None:
        ...


def extract_numeric_id(opaque_id: str | int | None) -> int | None:
    """GID(gid://shopify/Product/123) 또는 숫자 문자열에서 숫자 ID를 추출"""
    if opaque_id is None:
        return None
    text = str(opaque_id).strip()
    if text.isdigit():
        return int(text)
    m = _GID_RE.search(text)
    if m:
        return int(m.group(1))
    return None


def envelope_error(result: Any) -> str:
    if isinstance(result, dict):
        err = result.get("error") or result.get("message")
        if err:
            return str(err)
    return "Unknown error"


def envelope_status(result: Any) -> int | None:
    if isinstance(result, dict):
        code = result.get("status_code")
        if isinstance(code, int):
            return code
    return None


def unwrap_listing(result: dict[str, Any]) -> dict[str, Any]:
    """get_product envelope에서 리스팅 본문만 꺼낸다 (data.product 또는 data)"""
    data = result.get("data") or {}
    if isinstance(data, dict) and isinstance(data.get("product"), dict):
        return data["product"]
    return data if isinstance(data, dict) else {}
