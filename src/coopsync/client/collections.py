"""Named collections of the marketplace.

Each domain service (admin, merchant, producer, dispute) keeps its records
in one collection: a remote endpoint plus a local snapshot key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from coopsync.client.state import RecordStore
from coopsync.client.sync.coordinator import SyncCoordinator

if TYPE_CHECKING:
    from coopsync.client.ids import IdAllocator
    from coopsync.client.state import SnapshotStorage
    from coopsync.client.sync.coordinator import RemoteProtocol
    from coopsync.client.sync.tasks import BackgroundTasks
    from coopsync.client.sync.types import ErrorSink


@dataclass(frozen=True)
class CollectionSpec:
    """Where a collection lives.

    Attributes:
        name: Collection name used on the command line and in logs.
        endpoint: Base path on the remote API.
        storage_key: Key of the local snapshot.
    """

    name: str
    endpoint: str
    storage_key: str


COLLECTIONS: dict[str, CollectionSpec] = {
    spec.name: spec
    for spec in (
        CollectionSpec("admin-users", "/admin/users", "admin_users"),
        CollectionSpec("admin-marketplace", "/admin/marketplace", "admin_marketplace_products"),
        CollectionSpec("admin-financial", "/admin/financial", "admin_financial_transactions"),
        CollectionSpec("admin-audit", "/admin/audit", "admin_audit_logs"),
        CollectionSpec("admin-system", "/admin/system", "admin_system_metrics"),
        CollectionSpec("admin-notifications", "/admin/notifications", "admin_notification_templates"),
        CollectionSpec("disputes", "/disputes", "disputes"),
        CollectionSpec("producer-offers", "/producer/offers", "producer_offers"),
        CollectionSpec("producer-sales", "/producer/sales", "producer_sales"),
        CollectionSpec("producer-harvests", "/producer/harvests", "producer_harvests"),
        CollectionSpec("merchant-enrollments", "/merchant/enrollments", "merchant_enrollments"),
        CollectionSpec("merchant-inventory", "/merchant/inventory", "merchant_inventory"),
    )
}


def get_collection_spec(name: str) -> CollectionSpec:
    """Look up a registered collection.

    Raises:
        KeyError: If the name is not registered.
    """
    try:
        return COLLECTIONS[name]
    except KeyError:
        known = ", ".join(sorted(COLLECTIONS))
        raise KeyError(f"Unknown collection {name!r} (known: {known})") from None


def open_collection(
    name: str,
    remote: RemoteProtocol,
    storage: SnapshotStorage,
    endpoint: str | None = None,
    storage_key: str | None = None,
    ids: IdAllocator | None = None,
    error_sink: ErrorSink | None = None,
    tasks: BackgroundTasks | None = None,
) -> SyncCoordinator[dict[str, Any]]:
    """Build a coordinator for a collection.

    Registered names get their endpoint and storage key from COLLECTIONS;
    any other name needs an explicit endpoint.

    Raises:
        KeyError: If the name is unknown and no endpoint is given.
    """
    if endpoint is None:
        spec = get_collection_spec(name)
        endpoint = spec.endpoint
        storage_key = storage_key or spec.storage_key
    elif name in COLLECTIONS and storage_key is None:
        storage_key = COLLECTIONS[name].storage_key

    store = RecordStore(name, storage, key=storage_key or name)
    return SyncCoordinator(
        name,
        endpoint,
        remote,
        store,
        ids=ids,
        error_sink=error_sink,
        tasks=tasks,
    )
