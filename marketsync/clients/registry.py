from __future__ import annotations

import logging
from typing import Callable

from marketsync.clients.base import MarketplaceClient
from marketsync.models import SyncAccount
from marketsync.services.results import SyncValidationError

logger = logging.getLogger(__name__)

ClientFactory = Callable[[SyncAccount], MarketplaceClient]

_factories: dict[str, ClientFactory] = {}


def register_client_factory(channel: str, factory: ClientFactory) -> None:
    key = (channel or "").strip().lower()
    if not key:
        raise ValueError("channel is required")
    _factories[key] = factory
    logger.info(f"[CLIENT] Registered client factory for channel '{key}'")


def unregister_client_factory(channel: str) -> None:
    _factories.pop((channel or "").strip().lower(), None)


def client_for_account(account: SyncAccount) -> MarketplaceClient:
    factory = _factories.get((account.channel or "").strip().lower())
    if factory is None:
        raise SyncValidationError(f"No marketplace client registered for channel '{account.channel}'")
    return factory(account)


def registered_channels() -> list[str]:
    return sorted(_factories)
