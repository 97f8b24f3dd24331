"""Customer sync collaborator.

Maps a registered storefront customer to a SoftOne TRDR:
1. the ``_softone_trdr`` value already stored on the customer
2. an existing SoftOne customer found by CODE/EMAIL (``getCustomers``)
3. a new SoftOne CUSTOMER record created via ``setData``

The resolved TRDR is written back to the customer so later orders skip
the ERP round trips.
"""

import logging
from typing import Any, Dict, Optional

from connectors.softone.so_client import SoftOneApiClient
from connectors.softone.so_config import SoftOneConfig
from connectors.softone.so_errors import SoftOneError
from order_export.models import CUSTOMER_CODE_PREFIX, CUSTOMER_OBJECT, META_TRDR
from storefront.base import Address, Customer, CustomerRepository

logger = logging.getLogger(__name__)


CUSTOMERS_SQL_NAME = "getCustomers"


def filter_empty(record: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values and blank strings."""
    cleaned = {}
    for key, value in record.items():
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        cleaned[key] = value
    return cleaned


def customer_code(customer_id: int) -> str:
    return f"{CUSTOMER_CODE_PREFIX}{customer_id:06d}"


def guest_customer_code(order_id: int) -> str:
    return f"{CUSTOMER_CODE_PREFIX}G{order_id:06d}"


class CustomerSync:
    """Resolves or creates SoftOne customers for storefront customers."""

    def __init__(self, client: SoftOneApiClient, customers: CustomerRepository, config: SoftOneConfig):
        self.client = client
        self.customers = customers
        self.config = config

    def map_country(self, iso_code: str) -> str:
        """SoftOne COUNTRY id for an ISO 3166-1 alpha-2 code, or "" when unmapped."""
        return self.config.country_mappings.get((iso_code or "").strip().upper(), "")

    def commercial_defaults(self) -> Dict[str, str]:
        """AREAS/SOCURRENCY/TRDCATEGORY values added to every new customer."""
        return filter_empty({
            "AREAS": self.config.areas,
            "SOCURRENCY": self.config.currency,
            "TRDCATEGORY": self.config.trdcategory,
        })

    async def ensure_customer_trdr(self, customer_id: int) -> Optional[str]:
        """Return the TRDR for a registered customer, creating it if needed.

        ERP failures are logged and reported as None; the caller decides
        whether to fall back to a guest record.
        """
        if not customer_id or customer_id <= 0:
            return None

        customer = self.customers.get(customer_id)
        if customer is None:
            logger.warning(f"Customer {customer_id} not found; cannot sync to SoftOne")
            return None

        existing = customer.meta.get(META_TRDR)
        if existing not in (None, ""):
            return str(existing)

        try:
            trdr = await self.locate_existing_customer(customer)
            if not trdr:
                trdr = await self.create_customer(customer)
        except SoftOneError as e:
            logger.error(f"SoftOne customer sync failed for customer {customer_id}: {e}")
            return None

        if not trdr:
            return None

        self.customers.update_meta(customer_id, META_TRDR, trdr)
        logger.info(f"Customer {customer_id} linked to SoftOne TRDR {trdr}")
        return trdr

    async def locate_existing_customer(self, customer: Customer) -> Optional[str]:
        """Find a SoftOne customer by this customer's CODE and email."""
        email = self._email(customer)
        arguments = filter_empty({"CODE": customer_code(customer.id), "EMAIL": email})

        response = await self.client.sql_data(CUSTOMERS_SQL_NAME, arguments)
        for row in response.rows:
            trdr = row.get("TRDR")
            if trdr not in (None, ""):
                return str(trdr)
        return None

    async def create_customer(self, customer: Customer) -> Optional[str]:
        """Create the SoftOne CUSTOMER record and return its TRDR."""
        record = self.build_customer_record(customer)
        if not record.get("CODE") or not record.get("NAME"):
            logger.warning(f"Customer {customer.id} has no usable name or email; not creating a SoftOne record")
            return None

        response = await self.client.set_data(CUSTOMER_OBJECT, {CUSTOMER_OBJECT: [record]})
        if not response.id:
            logger.warning(f"SoftOne did not return a TRDR for customer {customer.id}")
            return None
        return response.id

    def build_customer_record(self, customer: Customer) -> Dict[str, Any]:
        billing: Address = customer.billing
        name = " ".join(p for p in (customer.first_name.strip(), customer.last_name.strip()) if p)
        if not name:
            name = billing.full_name
        if not name:
            name = self._email(customer)

        record = {
            "CODE": customer_code(customer.id),
            "NAME": name,
            "EMAIL": self._email(customer),
            "PHONE01": billing.phone,
            "ADDRESS": billing.address_1,
            "ADDRESS2": billing.address_2,
            "CITY": billing.city,
            "ZIP": billing.postcode,
            "COUNTRY": self.map_country(billing.country),
        }
        record.update(self.commercial_defaults())
        return filter_empty(record)

    @staticmethod
    def _email(customer: Customer) -> str:
        return (customer.email or customer.billing.email or "").strip()
