import os
import sys

from alembic import context
from sqlalchemy import pool, create_engine

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from marketsync.models import CatalogBase, MarketBase
from marketsync.settings import settings

# Mapping of database name to (Metadata, URL)
db_info = {
    "catalog": {"metadata": CatalogBase.metadata, "url": settings.catalog_database_url},
    "market": {"metadata": MarketBase.metadata, "url": settings.market_database_url},
}

config = context.config


def _configured_dbs():
    # URL이 없는 DB는 건너뛴다
    return [(name, info) for name, info in db_info.items() if info["url"]]


def _include_object_for(metadata):
    def include_object(object, name, type_, reflected, compare_to):
        if type_ == "table":
            return name in metadata.tables
        return True
    return include_object


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode for all configured databases."""
    for name, info in _configured_dbs():
        context.configure(
            url=info["url"],
            target_metadata=info["metadata"],
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
            version_table=f"alembic_version_{name}",  # DB별 버전 테이블
            upgrade_token=f"{name}_upgrades",
            downgrade_token=f"{name}_downgrades",
            include_object=_include_object_for(info["metadata"]),
        )

        with context.begin_transaction():
            context.run_migrations(engine_name=name)


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    for name, info in _configured_dbs():
        engine = create_engine(info["url"], poolclass=pool.NullPool)

        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=info["metadata"],
                version_table=f"alembic_version_{name}",
                upgrade_token=f"{name}_upgrades",
                downgrade_token=f"{name}_downgrades",
                include_object=_include_object_for(info["metadata"]),
            )

            with context.begin_transaction():
                context.run_migrations(engine_name=name)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
