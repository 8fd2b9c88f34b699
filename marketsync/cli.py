import argparse
import json
import logging
import sys
import uuid

from sqlalchemy import select

from marketsync.models import Product, SyncAccount
from marketsync.services.link_reconciler import LinkReconciler
from marketsync.services.status_checker import StatusChecker
from marketsync.services.sync_orchestrator import SyncOptions, SyncOrchestrator
from marketsync.session_factory import session_factory

# 로그 설정
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("marketsync.cli")


def _find_account(session, ref: str) -> SyncAccount | None:
    """UUID 또는 계정 이름으로 조회"""
    try:
        return session.get(SyncAccount, uuid.UUID(ref))
    except ValueError:
        return session.scalars(select(SyncAccount).where(SyncAccount.name == ref)).first()


def _product_ids(values: list[str]) -> list[uuid.UUID]:
    return [uuid.UUID(v) for v in values]


def _print(result) -> None:
    print(json.dumps(result.to_dict() if hasattr(result, "to_dict") else result, ensure_ascii=False, indent=2, default=str))


def run_sync_command(args) -> bool:
    session = session_factory()
    try:
        account = _find_account(session, args.account)
        if account is None:
            logger.error(f"[CLI] Sync account not found: {args.account}")
            return False
        options = SyncOptions(
            force=args.force,
            force_graphql=args.force_graphql,
            force_rest=args.force_rest,
            method="cli",
        )
        logger.info(f"[CLI] Starting sync for {len(args.product_ids)} products account={account.name}")
        result = SyncOrchestrator(session).sync_products(
            _product_ids(args.product_ids),
            account,
            options,
            stop_on_failure=args.stop_on_failure,
            actor=args.actor,
        )
        session.commit()
        _print(result)
        return result.success and result.data["summary"]["failed"] == 0
    except Exception as e:
        session.rollback()
        logger.exception(f"[CLI] Critical error: {e}")
        sys.exit(1)
    finally:
        session.close()


def run_status_command(args) -> bool:
    session = session_factory()
    try:
        account = _find_account(session, args.account)
        if account is None:
            logger.error(f"[CLI] Sync account not found: {args.account}")
            return False
        result = StatusChecker(session).check_products(_product_ids(args.product_ids), account)
        session.commit()
        _print(result)
        return result.success
    except Exception as e:
        session.rollback()
        logger.exception(f"[CLI] Critical error: {e}")
        sys.exit(1)
    finally:
        session.close()


def run_reconcile_command(args) -> bool:
    session = session_factory()
    try:
        account = _find_account(session, args.account)
        if account is None:
            logger.error(f"[CLI] Sync account not found: {args.account}")
            return False
        reconciler = LinkReconciler(session)
        outcomes = []
        for product_id in _product_ids(args.product_ids):
            product = session.get(Product, product_id)
            if product is None:
                logger.warning(f"[CLI] Product not found: {product_id}")
                outcomes.append({"product_id": str(product_id), "status": "not_found"})
                continue
            outcome = reconciler.synchronize(product, account, actor=args.actor)
            outcomes.append({"product_id": str(product_id), **outcome.to_dict()})
        session.commit()
        _print(outcomes)
        return all(o.get("status") != "not_found" for o in outcomes)
    except Exception as e:
        session.rollback()
        logger.exception(f"[CLI] Critical error: {e}")
        sys.exit(1)
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="Marketplace sync CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("sync", help="Sync products to a marketplace account")
    sync_parser.add_argument("--account", required=True, help="Sync account id or name")
    sync_parser.add_argument("product_ids", nargs="+", help="Product UUIDs")
    sync_parser.add_argument("--force", action="store_true", help="Re-sync even if already synced")
    strategy = sync_parser.add_mutually_exclusive_group()
    strategy.add_argument("--force-graphql", action="store_true", help="Always split by color")
    strategy.add_argument("--force-rest", action="store_true", help="Always create a single listing")
    sync_parser.add_argument("--stop-on-failure", action="store_true")
    sync_parser.add_argument("--actor", default="cli")

    status_parser = subparsers.add_parser("status", help="Check sync status and drift")
    status_parser.add_argument("--account", required=True, help="Sync account id or name")
    status_parser.add_argument("product_ids", nargs="+", help="Product UUIDs")

    reconcile_parser = subparsers.add_parser("reconcile", help="Reconcile links with legacy sync status")
    reconcile_parser.add_argument("--account", required=True, help="Sync account id or name")
    reconcile_parser.add_argument("product_ids", nargs="+", help="Product UUIDs")
    reconcile_parser.add_argument("--actor", default="cli")

    args = parser.parse_args()

    commands = {
        "sync": run_sync_command,
        "status": run_status_command,
        "reconcile": run_reconcile_command,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    ok = handler(args)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
