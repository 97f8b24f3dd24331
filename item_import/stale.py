"""Stale item handling.

After a full import, products that carry the SoftOne material marker but
were not stamped by the run are either drafted or forced out of stock.
Each handled product gets the run timestamp stamped so later pages of the
same sweep do not revisit it.
"""

import logging

from storefront.base import ProductRepository, ProductStatus, StockStatus

logger = logging.getLogger(__name__)


META_MTRL = "_softone_mtrl_id"
META_LAST_SYNC = "_softone_last_synced"
META_PAYLOAD_HASH = "_softone_payload_hash"
META_STALE = "_softone_stale_since"

STALE_ACTION_DRAFT = "draft"
STALE_ACTION_STOCK_OUT = "stock_out"
DEFAULT_STALE_BATCH_SIZE = 50


class StaleItemHandler:
    """Marks products untouched by the latest full import.

    Usage:
        handler = StaleItemHandler(products, action="draft")
        processed = handler.handle(state.started_at)
    """

    def __init__(
        self,
        products: ProductRepository,
        action: str = STALE_ACTION_STOCK_OUT,
        batch_size: int = DEFAULT_STALE_BATCH_SIZE,
    ):
        if action not in (STALE_ACTION_DRAFT, STALE_ACTION_STOCK_OUT):
            logger.warning(f"Unknown stale item action {action!r}, using {STALE_ACTION_STOCK_OUT}")
            action = STALE_ACTION_STOCK_OUT
        self.products = products
        self.action = action
        self.batch_size = batch_size if batch_size > 0 else DEFAULT_STALE_BATCH_SIZE

    def handle(self, run_timestamp: int) -> int:
        """Sweep stale products in pages and return how many were handled.

        Args:
            run_timestamp: Start timestamp of the completed full run
        """
        if not run_timestamp or run_timestamp <= 0:
            return 0

        processed = 0
        seen = set()
        while True:
            page = self.products.find_stale(META_MTRL, META_LAST_SYNC, run_timestamp, self.batch_size)
            if not page:
                break
            if all(product.id in seen for product in page):
                logger.warning("Stale sweep returned already-handled products; stopping")
                break

            for product in page:
                if product.id in seen:
                    continue
                seen.add(product.id)
                processed += 1
                if self.action == STALE_ACTION_DRAFT:
                    product.status = ProductStatus.DRAFT
                else:
                    product.status = ProductStatus.PUBLISH
                    product.stock_status = StockStatus.OUT_OF_STOCK
                product.set_meta(META_LAST_SYNC, int(run_timestamp))
                # Forces a full re-apply if the row comes back
                product.meta.pop(META_PAYLOAD_HASH, None)
                product.set_meta(META_STALE, int(run_timestamp))
                self.products.save(product)
                logger.info(f"Marked product {product.id} as stale ({self.action})")

        if processed:
            logger.info(
                f"Handled {processed} stale SoftOne products "
                f"(action={self.action}, timestamp={run_timestamp}, batch_size={self.batch_size})"
            )
        return processed
