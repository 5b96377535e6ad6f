# Overview: Per-application container for the terminal's stores and services.

"""
One TerminalServices is built per Flask app in create_app() and kept in
app.extensions["florapos"]. Routes and CLI commands reach it through
get_services(); nothing in the package holds module-level store state.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app

from .services.activity_log import ActivityLog, LocalEntryStorage, MemoryStorage
from .services.content_store import ContentStoreClient
from .services.inventory_cache import InventoryCache
from .services.pos_service import PointOfSale
from .services.reconciliation_service import ShiftReconciler

EXTENSION_KEY = "florapos"


@dataclass
class TerminalServices:
    activity_log: ActivityLog
    inventory: InventoryCache
    content_store: ContentStoreClient
    pos: PointOfSale
    reconciler: ShiftReconciler


def build_services(config) -> TerminalServices:
    storage_kind = config.get("ACTIVITY_LOG_STORAGE", "database")
    if storage_kind == "memory":
        storage = MemoryStorage()
    elif storage_kind == "database":
        storage = LocalEntryStorage()
    else:
        raise ValueError(f"Unknown ACTIVITY_LOG_STORAGE {storage_kind!r}")

    activity_log = ActivityLog(
        storage,
        key=config["ACTIVITY_LOG_KEY"],
        max_entries=config["ACTIVITY_LOG_MAX_ENTRIES"],
    )
    content_store = ContentStoreClient(
        config["CONTENT_STORE_URL"],
        token=config.get("CONTENT_STORE_TOKEN"),
        timeout=config["CONTENT_STORE_TIMEOUT"],
        transport=config.get("CONTENT_STORE_TRANSPORT"),
    )
    inventory = InventoryCache(
        content_store.list_items,
        ttl_seconds=config["INVENTORY_CACHE_TTL_SECONDS"],
    )
    return TerminalServices(
        activity_log=activity_log,
        inventory=inventory,
        content_store=content_store,
        pos=PointOfSale(activity_log, inventory, content_store),
        reconciler=ShiftReconciler(activity_log, inventory, content_store),
    )


def init_app(app: Flask) -> TerminalServices:
    services = build_services(app.config)
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> TerminalServices:
    return current_app.extensions[EXTENSION_KEY]
