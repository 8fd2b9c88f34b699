from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from marketsync.models import SyncLog

logger = logging.getLogger(__name__)


def record_sync_log(
    session: Session,
    *,
    sync_account_id: uuid.UUID,
    action: str,
    success: bool,
    message: str = "",
    product_id: uuid.UUID | None = None,
    variant_id: uuid.UUID | None = None,
    details: dict[str, Any] | None = None,
) -> SyncLog:
    """SyncLog 1행 추가 (수정/삭제하지 않음)"""
    log = SyncLog(
        sync_account_id=sync_account_id,
        action=action,
        product_id=product_id,
        variant_id=variant_id,
        status="success" if success else "failure",
        message=message,
        details=details or {},
    )
    session.add(log)
    session.flush()
    logger.debug(f"[AUDIT] {action} product={product_id} status={log.status}")
    return log
