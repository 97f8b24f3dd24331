"""Order Export Engine.

Sends a storefront order to SoftOne as a SALDOC sales document when the
order reaches a qualifying status.

Flow for one trigger:
    already exported? -> resolve customer (TRDR) -> build payload
        -> transmit with retry -> store document id + note

The ``_softone_document_id`` marker makes an export idempotent per order.
Retry only applies within one trigger: when every attempt fails no marker
is written, so a later status change starts again from scratch.

Usage:
    engine = OrderExportEngine(client, orders, products, CustomerSync(client, customers, config), config)
    result = await engine.export(order_id)
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from connectors.softone.so_client import SoftOneApiClient
from connectors.softone.so_config import SoftOneConfig
from connectors.softone.so_errors import SoftOneError
from connectors.softone.so_models import SetDataResponse
from core.observability.logging import get_logger, log_sync_event, with_correlation
from core.observability.metrics import SyncMetrics, get_metrics
from item_import.stale import META_MTRL
from order_export.customers import CUSTOMERS_SQL_NAME, CustomerSync, filter_empty, guest_customer_code
from order_export.models import (
    CUSTOMER_OBJECT,
    META_DOCUMENT_ID,
    META_TRDR,
    SALES_DOCUMENT_OBJECT,
    TRIGGER_STATUSES,
    ExportError,
    ExportOutcome,
    ExportResult,
    OrderDocumentPayload,
)
from storefront.base import Order, OrderLine, OrderRepository, ProductRepository

logger = get_logger(__name__)


DEFAULT_MAX_ATTEMPTS = 3
MAX_RETRY_DELAY = 30
TRNDATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def retry_delay(attempt: int) -> int:
    """Seconds to wait after failed ``attempt``: 1, 2, 4, ... capped at 30."""
    attempt = max(1, int(attempt))
    return min(MAX_RETRY_DELAY, 2 ** (attempt - 1))


def normalize_status(status: Any) -> str:
    """``"wc-processing"`` / ``OrderStatus.PROCESSING`` -> ``"processing"``."""
    value = getattr(status, "value", status)
    value = str(value or "").strip().lower()
    if value.startswith("wc-"):
        value = value[3:]
    return value


class OrderExportEngine:
    """Exports orders to SoftOne with per-trigger exponential backoff."""

    def __init__(
        self,
        client: SoftOneApiClient,
        orders: OrderRepository,
        products: ProductRepository,
        customer_sync: CustomerSync,
        config: SoftOneConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Optional[SyncMetrics] = None,
        trigger_statuses=TRIGGER_STATUSES,
    ):
        self.client = client
        self.orders = orders
        self.products = products
        self.customer_sync = customer_sync
        self.config = config
        self._sleep = sleep
        self.metrics = metrics or get_metrics()
        self.trigger_statuses = tuple(normalize_status(s) for s in trigger_statuses)

    # =========================================================================
    # Triggers
    # =========================================================================

    async def handle_status_change(self, order_id: int, old_status: Any, new_status: Any) -> ExportResult:
        """Export when an order moves into a trigger status."""
        old, new = normalize_status(old_status), normalize_status(new_status)
        if new not in self.trigger_statuses or new == old:
            return ExportResult(order_id=order_id, outcome=ExportOutcome.IGNORED)

        logger.info(f"Order {order_id} triggered SoftOne export via status {new!r}")
        return await self.export(order_id)

    async def export(self, order: Union[Order, int]) -> ExportResult:
        """Export one order. Never raises for ERP or payload failures.

        Returns:
            ExportResult describing the outcome; ``document_id`` is set on success
        """
        if not isinstance(order, Order):
            order_id = int(order)
            order = self.orders.get(order_id)
            if order is None:
                logger.warning(f"Order {order_id} not found; nothing to export")
                return ExportResult(order_id=order_id, outcome=ExportOutcome.IGNORED, message="Order not found")

        existing = order.get_meta(META_DOCUMENT_ID)
        if existing not in (None, ""):
            return ExportResult(
                order_id=order.id,
                outcome=ExportOutcome.ALREADY_EXPORTED,
                document_id=str(existing),
            )

        with with_correlation(order_id=str(order.id), stage="order_export"):
            try:
                trdr = await self.resolve_customer(order)
                payload = self.build_document_payload(order, trdr)
            except ExportError as e:
                logger.error(f"Order export aborted: {e}")
                self._add_note(order, f"SoftOne order export aborted: {e}")
                self.metrics.record_export_aborted()
                return ExportResult(order_id=order.id, outcome=ExportOutcome.ABORTED, message=str(e))

            log_sync_event(
                "order_export",
                "saldoc_payload",
                "Prepared SoftOne SALDOC payload",
                order_id=order.id,
                order_number=order.display_number,
                lines=len(payload.lines),
            )

            attempts = self.config.order_export_attempts or DEFAULT_MAX_ATTEMPTS
            response = await self.transmit_with_retry(order, payload, max_attempts=attempts)

            if response is None or not response.id:
                logger.error(f"SoftOne document was not created for order {order.display_number}")
                return ExportResult(order_id=order.id, outcome=ExportOutcome.FAILED, attempts=max(1, attempts))

            document_id = response.id
            self._set_meta(order, META_DOCUMENT_ID, document_id)
            self._add_note(order, f"SoftOne document #{document_id} created.")
            logger.info(f"SoftOne document {document_id} created", extra_fields={"document_id": document_id})
            return ExportResult(order_id=order.id, outcome=ExportOutcome.EXPORTED, document_id=document_id)

    # =========================================================================
    # Customer resolution
    # =========================================================================

    async def resolve_customer(self, order: Order) -> str:
        """Resolve the order's SoftOne TRDR.

        Order: stored TRDR, email lookup, customer sync, guest record.
        Every fresh resolution is stored on the order.

        Raises:
            ExportError: No TRDR could be resolved or created
        """
        stored = order.get_meta(META_TRDR)
        if stored not in (None, ""):
            return str(stored)

        email = (order.billing.email or "").strip()

        try:
            trdr = await self.locate_trdr_by_email(email) if email else None

            if not trdr and order.customer_id > 0:
                trdr = await self.customer_sync.ensure_customer_trdr(order.customer_id)

            if not trdr:
                trdr = await self.create_guest_customer(order)
        except SoftOneError as e:
            raise ExportError(f"SoftOne customer sync failed: {e}", order.id) from e

        if not trdr:
            raise ExportError("a SoftOne customer record could not be located or created", order.id)

        self._set_meta(order, META_TRDR, trdr)
        return trdr

    async def locate_trdr_by_email(self, email: str) -> Optional[str]:
        response = await self.client.sql_data(CUSTOMERS_SQL_NAME, {"EMAIL": email})
        for row in response.rows:
            row_email = row.get("EMAIL")
            if row_email is not None and str(row_email).strip().lower() != email.lower():
                continue
            trdr = row.get("TRDR")
            if trdr not in (None, ""):
                return str(trdr)
        return None

    async def create_guest_customer(self, order: Order) -> Optional[str]:
        """Create a SoftOne customer from the order's billing details.

        Raises:
            ExportError: The billing country has no SoftOne mapping
        """
        billing = order.billing
        name = billing.full_name or (billing.email or "").strip()
        if not name:
            return None

        country = (billing.country or "").strip().upper()
        softone_country = ""
        if country:
            softone_country = self.customer_sync.map_country(country)
            if not softone_country:
                logger.error(f"SoftOne country mapping missing for ISO code {country}")
                raise ExportError(
                    f"guest customer creation skipped because the country mapping for {country} is missing",
                    order.id,
                )

        record = {
            "CODE": guest_customer_code(order.id),
            "NAME": name,
            "EMAIL": billing.email,
            "PHONE01": billing.phone,
            "ADDRESS": billing.address_1,
            "ADDRESS2": billing.address_2,
            "CITY": billing.city,
            "ZIP": billing.postcode,
            "COUNTRY": softone_country,
        }
        record.update(self.customer_sync.commercial_defaults())
        record = filter_empty(record)

        response = await self.client.set_data(CUSTOMER_OBJECT, {CUSTOMER_OBJECT: [record]})
        if not response.id:
            return None

        logger.info(f"Guest customer created in SoftOne (TRDR {response.id})")
        return response.id

    # =========================================================================
    # Payload
    # =========================================================================

    def build_document_payload(self, order: Order, trdr: str) -> OrderDocumentPayload:
        """Build the SALDOC payload.

        Raises:
            ExportError: Series not configured, or no transmittable lines
        """
        series = (self.config.default_saldoc_series or "").strip()
        if not series:
            raise ExportError("the SoftOne document series is not configured", order.id)

        header = filter_empty({
            "SERIES": series,
            "TRDR": str(trdr),
            "VARCHAR01": order.display_number,
            "TRNDATE": self.format_order_date(order),
            "COMMENTS": self.build_order_comments(order),
        })
        lines = self.build_item_lines(order)

        mtrdoc = {"WHOUSE": self.config.warehouse} if self.config.warehouse else None
        payload = OrderDocumentPayload(header=header, lines=lines, mtrdoc=mtrdoc)

        if not payload.is_complete():
            raise ExportError("the order payload has no header or no item lines", order.id)
        return payload

    @staticmethod
    def format_order_date(order: Order) -> str:
        created = order.created_at or datetime.now(timezone.utc)
        if created.tzinfo is not None:
            created = created.astimezone(timezone.utc)
        return created.strftime(TRNDATE_FORMAT)

    @staticmethod
    def build_order_comments(order: Order) -> str:
        comments = []
        if order.customer_note.strip():
            comments.append(order.customer_note.strip())
        if order.payment_method_title.strip():
            comments.append(f"Payment method: {order.payment_method_title.strip()}")
        if not comments:
            return f"WooCommerce order {order.display_number}"
        return " | ".join(comments)

    def build_item_lines(self, order: Order) -> List[Dict[str, Any]]:
        """One line per item with a positive quantity and a known material id."""
        lines = []
        for line in order.lines:
            if line.quantity <= 0:
                continue
            mtrl = self.line_mtrl(line)
            if not mtrl:
                logger.warning(
                    f"Order line {line.name!r} skipped because the SoftOne item (MTRL) identifier is missing",
                    extra_fields={"product_id": line.product_id, "variation_id": line.variation_id},
                )
                continue
            lines.append(filter_empty({
                "MTRL": mtrl,
                "QTY1": float(line.quantity),
                "COMMENTS1": line.name,
            }))
        return lines

    def line_mtrl(self, line: OrderLine) -> str:
        """Material id of the line's variation, falling back to its parent product."""
        for product_id in (line.variation_id, line.product_id):
            if not product_id:
                continue
            product = self.products.get(product_id)
            if product is None:
                continue
            mtrl = product.get_meta(META_MTRL)
            if mtrl not in (None, ""):
                return str(mtrl)
        return ""

    # =========================================================================
    # Transmission
    # =========================================================================

    async def transmit_with_retry(
        self,
        order: Order,
        payload: OrderDocumentPayload,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> Optional[SetDataResponse]:
        """Send the document, retrying failed attempts with backoff.

        Each failure is logged and noted on the order. Returns None once
        every attempt has failed.
        """
        if not payload.is_complete():
            raise ExportError("refusing to transmit an incomplete payload", order.id)

        max_attempts = max(1, int(max_attempts))
        data = payload.to_service_data()

        for attempt in range(1, max_attempts + 1):
            self.metrics.record_export_attempt()
            with with_correlation(attempt=attempt):
                try:
                    response = await self.client.set_data(SALES_DOCUMENT_OBJECT, data)
                except SoftOneError as e:
                    self.metrics.record_export_result(False)
                    logger.error(f"SoftOne order export attempt {attempt} failed: {e}")
                    self._add_note(order, f"SoftOne order export attempt {attempt} failed: {e}")
                    if attempt < max_attempts:
                        await self._sleep(retry_delay(attempt))
                    continue

                self.metrics.record_export_result(True)
                logger.info(f"SoftOne SALDOC request succeeded on attempt {attempt}")
                return response

        return None

    # =========================================================================
    # Order persistence helpers
    # =========================================================================

    def _set_meta(self, order: Order, key: str, value: Any) -> None:
        order.meta[key] = value
        self.orders.update_meta(order.id, key, value)

    def _add_note(self, order: Order, note: str) -> None:
        order.notes.append(note)
        self.orders.add_note(order.id, note)
