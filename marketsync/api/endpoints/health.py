import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from marketsync.clients.registry import registered_channels
from marketsync.db import get_session
from marketsync.models import SyncAccount

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/system")
def get_system_health(session: Session = Depends(get_session)):
    """
    서버 및 마켓 DB 연결 상태를 확인합니다.
    """
    db_ok = False
    now = None
    try:
        # MarketBase에 바인딩된 테이블을 거쳐야 세션이 엔진을 찾는다
        now = session.scalar(select(func.now()).select_from(SyncAccount).limit(1))
        db_ok = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_ok else "unhealthy",
        "database": "ok" if db_ok else "error",
        "timestamp": now.isoformat() if hasattr(now, "isoformat") else now,
    }


@router.get("/accounts")
def get_accounts_health(session: Session = Depends(get_session)):
    """
    활성 동기화 계정별로 채널 클라이언트가 등록되어 있는지 확인합니다.
    """
    channels = set(registered_channels())
    accounts = session.scalars(select(SyncAccount).where(SyncAccount.is_active.is_(True)).order_by(SyncAccount.name)).all()
    results = []
    for acc in accounts:
        ready = (acc.channel or "").strip().lower() in channels
        results.append({
            "account_id": str(acc.id),
            "account_name": acc.name,
            "channel": acc.channel,
            "status": "healthy" if ready else "unconfigured",
            "message": "" if ready else f"No marketplace client registered for channel '{acc.channel}'",
        })
    return results
