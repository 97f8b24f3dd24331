"""Process-wide runtime wiring.

Builds the configuration, stores, SoftOne client, and engines once per
process. Route handlers receive the runtime through the ``get_runtime``
dependency, which tests replace via ``app.dependency_overrides``.

Environment:
    SOFTONE_STATE_DB     SQLite file for caches and batch state (in-memory if unset)
    SOFTONE_SESSION_DIR  Directory for durable session metadata (in-memory if unset)
    SOFTONE_SESSION_KEY  Base64 AES-256 key for encrypting stored client IDs
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import aiohttp

from connectors.softone.so_auth import SoftOneSessionManager
from connectors.softone.so_client import SoftOneApiClient
from connectors.softone.so_config import SoftOneConfig, load_softone_config
from core.security.encryption import SecretEncryption
from core.security.session_store import FileSessionMetaStore, InMemorySessionMetaStore, SessionMetaStore
from core.storage.kv_store import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore
from item_import.engine import ItemImportEngine
from item_import.stale import StaleItemHandler
from item_import.state_store import BatchStateStore, LastRunStore
from order_export.customers import CustomerSync
from order_export.engine import OrderExportEngine
from storefront.memory import InMemoryStorefront

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything the API and scripts need, built once."""
    config: SoftOneConfig
    kv: KeyValueStore
    session_meta: SessionMetaStore
    storefront: InMemoryStorefront
    sessions: SoftOneSessionManager
    client: SoftOneApiClient
    imports: ItemImportEngine
    orders: OrderExportEngine
    batch_size: int = field(default=25)

    async def close(self) -> None:
        await self.client.close()


def _build_kv() -> KeyValueStore:
    db_path = os.getenv("SOFTONE_STATE_DB", "").strip()
    if db_path:
        return SqliteKeyValueStore(Path(db_path))
    return InMemoryKeyValueStore()


def _build_session_meta() -> SessionMetaStore:
    session_dir = os.getenv("SOFTONE_SESSION_DIR", "").strip()
    if not session_dir:
        return InMemorySessionMetaStore()

    encryption = None
    key = os.getenv("SOFTONE_SESSION_KEY", "").strip()
    if key:
        encryption = SecretEncryption(key)
    else:
        logger.warning("SOFTONE_SESSION_KEY not set; session metadata will be stored unencrypted")
    return FileSessionMetaStore(session_dir, encryption=encryption)


def build_runtime(
    config: Optional[SoftOneConfig] = None,
    kv: Optional[KeyValueStore] = None,
    session_meta: Optional[SessionMetaStore] = None,
    storefront: Optional[InMemoryStorefront] = None,
    http_session: Optional[aiohttp.ClientSession] = None,
) -> Runtime:
    """Wire the stores, client, and engines together."""
    config = config or load_softone_config()
    kv = kv or _build_kv()
    session_meta = session_meta or _build_session_meta()
    storefront = storefront or InMemoryStorefront()

    sessions = SoftOneSessionManager(config, kv, session_meta)
    client = SoftOneApiClient(config, sessions, http_session=http_session)

    imports = ItemImportEngine(
        client,
        storefront.products,
        storefront.taxonomy,
        BatchStateStore(kv),
        LastRunStore(kv),
        StaleItemHandler(storefront.products, action=config.stale_action),
    )
    orders = OrderExportEngine(
        client,
        storefront.orders,
        storefront.products,
        CustomerSync(client, storefront.customers, config),
        config,
    )

    return Runtime(
        config=config,
        kv=kv,
        session_meta=session_meta,
        storefront=storefront,
        sessions=sessions,
        client=client,
        imports=imports,
        orders=orders,
        batch_size=config.import_batch_size,
    )


_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    """FastAPI dependency returning the process runtime."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime


async def shutdown_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.close()
        _runtime = None
