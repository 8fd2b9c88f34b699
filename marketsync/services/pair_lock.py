"""
(상품, 계정) 쌍 단위 단일 작성자 락.

- PostgreSQL: pg_try_advisory_xact_lock (트랜잭션 종료 시 자동 해제, 프로세스 간 유효)
- 그 외 dialect(SQLite 테스트 등): 프로세스 내에서 잡힌 락 ID 집합
"""
from __future__ import annotations

import hashlib
import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session, class_mapper

from marketsync.models import SyncStatus
from marketsync.services.results import PairLocked

logger = logging.getLogger(__name__)

# 현재 잡혀 있는 락 ID만 보관 (해제 시 제거)
_held_locks: set[int] = set()
_registry_guard = threading.Lock()


def pair_lock_id(product_id: uuid.UUID, sync_account_id: uuid.UUID) -> int:
    # 안정적인 64비트 signed 정수 락 ID (Postgres bigint 호환)
    lock_id = int(hashlib.md5(f"{product_id}:{sync_account_id}".encode()).hexdigest()[:16], 16)
    if lock_id > 0x7FFFFFFFFFFFFFFF:
        lock_id -= 0x10000000000000000
    return lock_id


def _try_local(lock_id: int) -> bool:
    with _registry_guard:
        if lock_id in _held_locks:
            return False
        _held_locks.add(lock_id)
        return True


def _release_local(lock_id: int) -> None:
    with _registry_guard:
        _held_locks.discard(lock_id)


def held_local_locks() -> int:
    with _registry_guard:
        return len(_held_locks)


class PairLock:
    def __init__(self, session: Session, product_id: uuid.UUID, sync_account_id: uuid.UUID):
        self.session = session
        self.product_id = product_id
        self.sync_account_id = sync_account_id
        self.lock_id = pair_lock_id(product_id, sync_account_id)

    def _connection(self):
        return self.session.connection(bind_arguments={"mapper": class_mapper(SyncStatus)})

    def _try_advisory(self) -> bool:
        result = self._connection().execute(
            text("SELECT pg_try_advisory_xact_lock(:id)"),
            {"id": self.lock_id},
        ).scalar()
        return bool(result)

    @contextmanager
    def hold(self) -> Iterator[None]:
        """락을 잡은 동안만 블록을 실행. 이미 잡혀 있으면 PairLocked."""
        conn = self._connection()
        if conn.dialect.name == "postgresql":
            if not self._try_advisory():
                logger.warning(f"[LOCK] Pair {self.product_id}:{self.sync_account_id} is busy")
                raise PairLocked(f"Sync already in progress for product {self.product_id}")
            # xact lock은 커밋/롤백 시 해제된다
            yield
            return

        if not _try_local(self.lock_id):
            logger.warning(f"[LOCK] Pair {self.product_id}:{self.sync_account_id} is busy")
            raise PairLocked(f"Sync already in progress for product {self.product_id}")
        try:
            yield
        finally:
            _release_local(self.lock_id)
