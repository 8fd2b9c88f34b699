import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from marketsync.db import get_session
from marketsync.models import MarketplaceLink, Product, SyncAccount
from marketsync.schemas.sync import (
    AccountActionRequest,
    ActionResultResponse,
    BulkStatusRequest,
    BulkSyncRequest,
    MarketplaceLinkResponse,
    PricingRequest,
)
from marketsync.services.link_reconciler import LinkReconciler
from marketsync.services.pricing_updater import PricingUpdater
from marketsync.services.status_checker import StatusChecker
from marketsync.services.sync_orchestrator import SyncOptions, SyncOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_account(session: Session, account_id: uuid.UUID) -> SyncAccount:
    account = session.get(SyncAccount, account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Sync account not found")
    return account


def _get_product(session: Session, product_id: uuid.UUID) -> Product:
    product = session.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/products/sync", response_model=ActionResultResponse)
def sync_products(payload: BulkSyncRequest, session: Session = Depends(get_session)):
    """
    여러 상품을 지정한 계정으로 동기화합니다.
    상품별 결과와 요약(synced/skipped/failed/not_found/cancelled)을 반환합니다.
    """
    account = _get_account(session, payload.sync_account_id)
    options = SyncOptions(
        force=payload.force,
        force_graphql=payload.force_graphql,
        force_rest=payload.force_rest,
        method=payload.method,
    )
    result = SyncOrchestrator(session).sync_products(
        payload.product_ids,
        account,
        options,
        stop_on_failure=payload.stop_on_failure,
        actor=payload.actor,
    )
    return result.to_dict()


@router.post("/products/status", response_model=ActionResultResponse)
def check_products_status(payload: BulkStatusRequest, session: Session = Depends(get_session)):
    """
    상품들의 동기화 상태와 외부 리스팅 drift를 점검합니다.
    """
    account = _get_account(session, payload.sync_account_id)
    return StatusChecker(session).check_products(payload.product_ids, account).to_dict()


@router.post("/products/{product_id}/reconcile", response_model=ActionResultResponse)
def reconcile_product(product_id: uuid.UUID, payload: AccountActionRequest, session: Session = Depends(get_session)):
    """
    MarketplaceLink와 레거시 SyncStatus를 맞춥니다. 이미 일치하면 아무것도 쓰지 않습니다.
    """
    account = _get_account(session, payload.sync_account_id)
    product = _get_product(session, product_id)
    reconciler = LinkReconciler(session)
    outcome = reconciler.synchronize(product, account, actor=payload.actor)
    view = reconciler.status_view(product, account)
    return {
        "success": True,
        "message": outcome.message,
        "data": {**outcome.to_dict(), "status_view": view.to_dict()},
    }


@router.post("/products/{product_id}/pricing", response_model=ActionResultResponse)
def update_product_pricing(product_id: uuid.UUID, payload: PricingRequest, session: Session = Depends(get_session)):
    """
    연결된 색상 리스팅의 variant 가격을 갱신합니다.
    """
    account = _get_account(session, payload.sync_account_id)
    product = _get_product(session, product_id)
    result = PricingUpdater(session).update_pricing(product, account, payload.pricing_source, actor=payload.actor)
    return result.to_dict()


@router.post("/products/{product_id}/unlink", response_model=ActionResultResponse)
def unlink_product(product_id: uuid.UUID, payload: AccountActionRequest, session: Session = Depends(get_session)):
    """
    상품의 계정 링크를 모두 해제합니다. 외부 리스팅은 삭제하지 않습니다.
    """
    account = _get_account(session, payload.sync_account_id)
    product = _get_product(session, product_id)
    return LinkReconciler(session).unlink_product(product, account, actor=payload.actor).to_dict()


@router.get("/products/{product_id}/links", response_model=List[MarketplaceLinkResponse])
def list_product_links(
    product_id: uuid.UUID,
    session: Session = Depends(get_session),
    sync_account_id: uuid.UUID | None = Query(default=None, alias="syncAccountId"),
    active_only: bool = Query(default=False, alias="activeOnly"),
):
    """
    상품의 MarketplaceLink 목록 (최신 생성 순).
    """
    _get_product(session, product_id)
    stmt = select(MarketplaceLink).where(MarketplaceLink.product_id == product_id)
    if sync_account_id is not None:
        stmt = stmt.where(MarketplaceLink.sync_account_id == sync_account_id)
    links = session.scalars(stmt.order_by(MarketplaceLink.created_at.desc())).all()
    if active_only:
        links = [link for link in links if link.is_active]
    return links
