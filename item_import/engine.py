"""Item Import Engine.

Resumable, batched import of SoftOne catalogue rows into storefront products.

State machine (per process_id, bound to one owner):
    UNINITIALIZED --begin()--> BATCH_IN_PROGRESS --run_batch()*--> COMPLETE

``begin`` pulls every matching row in one SqlData call (the ERP query has no
pagination) and parks the raw rows inside the batch state. Each
``run_batch`` consumes the next slice, so one import can span many short
HTTP handler invocations with bounded work per call.

Usage:
    engine = ItemImportEngine(client, products, taxonomy, BatchStateStore(kv), LastRunStore(kv), stale)
    state = await engine.begin(owner_id="admin-1")
    result = engine.run_batch(state, owner_id="admin-1", batch_size=25)
"""

import math
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from connectors.softone.so_client import SoftOneApiClient
from connectors.softone.so_errors import redact
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import SyncMetrics, get_metrics
from item_import.models import (
    BatchOwnershipError,
    BatchStateNotFoundError,
    ImportBatchResult,
    ImportBatchState,
    ImportPhase,
    ImportStats,
    NormalizedItem,
    RowImportError,
    RowOutcome,
)
from item_import.normalize import normalize_row, payload_hash
from item_import.stale import META_LAST_SYNC, META_MTRL, META_PAYLOAD_HASH, META_STALE, StaleItemHandler
from item_import.state_store import BatchStateStore, LastRunStore
from storefront.base import (
    BRAND_ATTRIBUTE,
    COLOUR_ATTRIBUTE,
    PRODUCT_CATEGORY,
    SIZE_ATTRIBUTE,
    Product,
    ProductRepository,
    ProductStatus,
    StockStatus,
    TaxonomyRepository,
)

logger = get_logger(__name__)


ITEMS_SQL_NAME = "getItems"
DELTA_PARAM = "pMins"

META_BARCODE = "_softone_barcode"
META_BRAND = "_softone_brand"
META_ITEM_CODE = "_softone_item_code"

ATTRIBUTE_LABELS = {
    COLOUR_ATTRIBUTE: "Colour",
    SIZE_ATTRIBUTE: "Size",
    BRAND_ATTRIBUTE: "Brand",
}


def format_price(price: float) -> str:
    """Storefront price string: 19.9 -> "19.90", 20.0 -> "20"."""
    if float(price).is_integer():
        return str(int(price))
    return f"{price:.2f}"


class ItemImportEngine:
    """Orchestrates delta/full catalogue pulls and the batched upsert loop."""

    def __init__(
        self,
        client: SoftOneApiClient,
        products: ProductRepository,
        taxonomy: TaxonomyRepository,
        state_store: BatchStateStore,
        last_run: LastRunStore,
        stale_handler: StaleItemHandler,
        clock: Callable[[], float] = time.time,
        metrics: Optional[SyncMetrics] = None,
    ):
        self.client = client
        self.products = products
        self.taxonomy = taxonomy
        self.state_store = state_store
        self.last_run = last_run
        self.stale_handler = stale_handler
        self._clock = clock
        self.metrics = metrics or get_metrics()
        self._ensured_taxonomies: set = set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def begin(
        self,
        owner_id: str,
        force_full_import: Optional[bool] = None,
        force_taxonomy_refresh: bool = False,
    ) -> ImportBatchState:
        """Fetch the rows for a new import and persist the initial state.

        A delta window (minutes since the last successful run) is requested
        when a previous run exists and ``force_full_import`` is not True.

        Raises:
            SoftOneError: The ERP query failed (nothing is persisted)
        """
        now = self._clock()
        last_run = self.last_run.get()

        delta_minutes = None
        if last_run and force_full_import is not True:
            elapsed = max(0.0, now - last_run)
            delta_minutes = max(1, math.ceil(elapsed / 60))

        rows = await self.fetch_rows(delta_minutes)

        state = ImportBatchState(
            process_id=str(uuid.uuid4()),
            owner_id=owner_id,
            created_at=now,
            started_at=int(now),
            force_full_import=bool(force_full_import),
            force_taxonomy_refresh=force_taxonomy_refresh,
            delta_minutes=delta_minutes,
            total_rows=len(rows),
            rows=rows,
        )
        self.state_store.save(state)
        self.metrics.record_import_started()

        with with_correlation(process_id=state.process_id, owner_id=owner_id, stage="item_import"):
            mode = f"delta ({delta_minutes} min)" if delta_minutes else "full"
            logger.info(f"Item import started: {mode}, {len(rows)} rows", extra_fields={"total_rows": len(rows)})

        return state

    async def fetch_rows(self, delta_minutes: Optional[int] = None) -> List[Dict]:
        """Pull catalogue rows, optionally restricted to the last N minutes."""
        extra = {DELTA_PARAM: delta_minutes} if delta_minutes else None
        response = await self.client.sql_data(ITEMS_SQL_NAME, extra=extra)
        return response.rows

    def load_state(self, owner_id: str, process_id: str) -> ImportBatchState:
        """Load persisted state for ``owner_id``.

        Raises:
            BatchStateNotFoundError: Unknown id, wrong owner scope, or TTL expired
        """
        state = self.state_store.load(owner_id, process_id)
        if state is None:
            raise BatchStateNotFoundError(f"No import in progress for process {process_id}")
        return state

    def run_batch(self, state: ImportBatchState, owner_id: str, batch_size: int) -> ImportBatchResult:
        """Apply the next ``batch_size`` rows.

        Row-level failures are counted as skipped and never abort the batch.

        Raises:
            BatchOwnershipError: ``owner_id`` does not own ``state``
        """
        if owner_id != state.owner_id:
            raise BatchOwnershipError(f"Import {state.process_id} belongs to a different owner")

        if state.phase == ImportPhase.COMPLETE:
            return ImportBatchResult(state=state, complete=True)

        batch_size = max(1, int(batch_size))
        total = state.total_rows if state.total_rows is not None else len(state.rows)
        rows = state.rows[state.cursor: state.cursor + batch_size]

        if not rows:
            return self._complete(state, ImportStats(), [])

        batch = ImportStats()
        warnings: List[str] = []
        started = time.perf_counter()

        with with_correlation(process_id=state.process_id, owner_id=owner_id, stage="item_import"):
            for index, raw in enumerate(rows, start=state.cursor):
                try:
                    outcome = self.import_row(raw, state)
                except Exception as e:
                    outcome = RowOutcome.SKIPPED
                    warnings.append(f"Row {index}: {e}")
                    logger.error(
                        f"Skipping row {index}: {e}",
                        extra_fields={"row": redact(raw), "error_type": type(e).__name__},
                    )
                batch.record(outcome)

            state.cursor += len(rows)
            state.stats.add(batch)

            duration_ms = (time.perf_counter() - started) * 1000
            self.metrics.record_import_batch(batch.created, batch.updated, batch.skipped, duration_ms)
            logger.info(
                f"Batch applied: {state.cursor}/{total} rows "
                f"(created={batch.created}, updated={batch.updated}, skipped={batch.skipped})"
            )

            if state.cursor >= total:
                return self._complete(state, batch, warnings)

        self.state_store.save(state)
        return ImportBatchResult(state=state, batch=batch, complete=False, warnings=warnings)

    def _complete(self, state: ImportBatchState, batch: ImportStats, warnings: List[str]) -> ImportBatchResult:
        """Transition to COMPLETE, sweep stale items after a full run, drop the state."""
        state.phase = ImportPhase.COMPLETE

        stale = 0
        if state.is_full_import:
            try:
                stale = self.stale_handler.handle(state.started_at)
            except Exception as e:
                warnings.append(f"Stale item handling failed: {e}")
                logger.exception(f"Stale item handling failed after import {state.process_id}")

        self.state_store.delete(state.owner_id, state.process_id)
        self.metrics.record_import_completed(stale)
        logger.info(
            f"Item import complete: processed={state.stats.processed}, created={state.stats.created}, "
            f"updated={state.stats.updated}, skipped={state.stats.skipped}, stale={stale}"
        )
        return ImportBatchResult(state=state, batch=batch, complete=True, warnings=warnings, stale_processed=stale)

    # =========================================================================
    # Row handling
    # =========================================================================

    def import_row(self, raw: Dict, state: ImportBatchState) -> RowOutcome:
        """Upsert one raw row and classify the outcome.

        Raises:
            RowImportError: The row cannot be matched to a product identity
        """
        item = normalize_row(raw)
        if not item.mtrl and not (item.sku or item.barcode or item.code):
            raise RowImportError("Row has neither a material id nor a SKU, barcode, or code", raw)

        product, is_new = self.resolve_product(item)
        fingerprint = payload_hash(item)

        if not is_new and not state.force_taxonomy_refresh and product.get_meta(META_PAYLOAD_HASH) == fingerprint:
            product.set_meta(META_LAST_SYNC, state.started_at)
            self.products.save(product)
            return RowOutcome.SKIPPED

        self.apply_fields(product, item, is_new)
        self.apply_taxonomy(product, item)
        if not is_new:
            self.restore_stale(product, item)

        if item.mtrl:
            product.set_meta(META_MTRL, item.mtrl)
        if item.code:
            product.set_meta(META_ITEM_CODE, item.code)
        if item.barcode:
            product.set_meta(META_BARCODE, item.barcode)
        if item.brand:
            product.set_meta(META_BRAND, item.brand)
        product.set_meta(META_PAYLOAD_HASH, fingerprint)
        product.set_meta(META_LAST_SYNC, state.started_at)

        self.products.save(product)
        return RowOutcome.CREATED if is_new else RowOutcome.UPDATED

    def restore_stale(self, product: Product, item: NormalizedItem) -> None:
        """Undo a previous stale sweep for a product whose row is back in the catalogue."""
        if product.get_meta(META_STALE) is None:
            return
        product.meta.pop(META_STALE, None)
        product.status = ProductStatus.PUBLISH
        if item.stock_quantity is None:
            product.stock_status = StockStatus.IN_STOCK
        logger.info(f"Product {product.id} reappeared in SoftOne; restored from stale state")

    def resolve_product(self, item: NormalizedItem) -> Tuple[Product, bool]:
        """Find the product for a row: material id first, then SKU, barcode, code.

        A fallback match that already carries a different material id is
        never reused, so one material id can never end up on two products.
        """
        if item.mtrl:
            product = self.products.find_by_meta(META_MTRL, item.mtrl)
            if product:
                return product, False

        candidates = []
        if item.sku:
            candidates.append(lambda: self.products.find_by_sku(item.sku))
        if item.barcode:
            candidates.append(lambda: self.products.find_by_meta(META_BARCODE, item.barcode))
        if item.code:
            candidates.append(lambda: self.products.find_by_meta(META_ITEM_CODE, item.code))
            candidates.append(lambda: self.products.find_by_sku(item.code))

        for lookup in candidates:
            product = lookup()
            if product is None:
                continue
            existing_mtrl = product.get_meta(META_MTRL)
            if item.mtrl and existing_mtrl and str(existing_mtrl) != item.mtrl:
                continue
            return product, False

        return self.products.new_product(), True

    def apply_fields(self, product: Product, item: NormalizedItem, is_new: bool) -> None:
        """Copy non-empty source values; absent values never erase existing data."""
        if item.name:
            product.name = item.name
        elif is_new:
            product.name = item.sku or item.code or item.mtrl or ""

        if item.description:
            product.description = item.description

        sku = item.sku or (item.code if is_new else None)
        if sku and product.sku != sku:
            owner = self.products.find_by_sku(sku)
            if owner is None or owner.id == product.id:
                product.sku = sku
            else:
                logger.warning(f"SKU {sku} already belongs to product {owner.id}; keeping existing SKU")

        if item.price is not None:
            product.regular_price = format_price(item.price)

        if item.stock_quantity is not None:
            product.manage_stock = True
            product.stock_quantity = max(0, int(round(item.stock_quantity)))
            product.stock_status = StockStatus.IN_STOCK if item.stock_quantity > 0 else StockStatus.OUT_OF_STOCK
        elif is_new:
            product.manage_stock = False
            product.stock_status = StockStatus.IN_STOCK

        if is_new:
            product.status = ProductStatus.PUBLISH

    def apply_taxonomy(self, product: Product, item: NormalizedItem) -> None:
        """Assign category terms and colour/size/brand attribute terms, creating them on first use."""
        category_ids = []
        parent_id = None
        if item.category:
            parent = self.taxonomy.get_or_create_term(PRODUCT_CATEGORY, item.category)
            category_ids.append(parent.id)
            parent_id = parent.id
        if item.subcategory:
            child = self.taxonomy.get_or_create_term(PRODUCT_CATEGORY, item.subcategory, parent_id=parent_id)
            category_ids.append(child.id)
        if category_ids:
            product.category_ids = category_ids

        for taxonomy, value in (
            (COLOUR_ATTRIBUTE, item.colour),
            (SIZE_ATTRIBUTE, item.size),
            (BRAND_ATTRIBUTE, item.brand),
        ):
            if not value:
                continue
            self._ensure_taxonomy(taxonomy)
            term = self.taxonomy.get_or_create_term(taxonomy, value)
            product.attributes[taxonomy] = [term.name]

    def _ensure_taxonomy(self, taxonomy: str) -> None:
        if taxonomy in self._ensured_taxonomies:
            return
        self.taxonomy.ensure_taxonomy(taxonomy, ATTRIBUTE_LABELS[taxonomy])
        self._ensured_taxonomies.add(taxonomy)
