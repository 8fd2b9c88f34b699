from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from marketsync.models import CatalogBase, MarketBase
from marketsync.settings import settings


def _make_engine(url: str) -> Engine | None:
    # URL이 비어 있으면 엔진을 만들지 않는다 (테스트/CLI 도움말 등)
    if not url:
        return None
    return create_engine(url, pool_pre_ping=True)


catalog_engine = _make_engine(settings.catalog_database_url)
market_engine = _make_engine(settings.market_database_url)

SessionLocal = sessionmaker(
    autoflush=False,
    expire_on_commit=False,
    binds={
        base: engine
        for base, engine in ((CatalogBase, catalog_engine), (MarketBase, market_engine))
        if engine is not None
    },
)


def get_session() -> Iterator[Session]:
    with SessionLocal() as session:
        with session.begin():
            yield session
