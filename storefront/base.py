"""Storefront collaborator interfaces.

The sync engines never talk to the e-commerce platform directly. They work
against the repositories defined here:
- ProductRepository: find/create/save products, paged metadata queries
- TaxonomyRepository: ensure taxonomies and terms exist
- OrderRepository: order metadata and notes
- CustomerRepository: customer metadata

Concrete adapters (in-memory here, a WooCommerce REST adapter elsewhere)
implement these ABCs and are injected at process start.
"""

import re
import unicodedata
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Enums
# =============================================================================

class ProductStatus(str, Enum):
    """Product publication status."""
    PUBLISH = "publish"
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"


class StockStatus(str, Enum):
    """Product stock status."""
    IN_STOCK = "instock"
    OUT_OF_STOCK = "outofstock"


class OrderStatus(str, Enum):
    """Order lifecycle status."""
    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


# Taxonomy names
PRODUCT_CATEGORY = "product_cat"
COLOUR_ATTRIBUTE = "pa_colour"
SIZE_ATTRIBUTE = "pa_size"
BRAND_ATTRIBUTE = "pa_brand"


def slugify(label: str) -> str:
    """Lower-case, ASCII-folded, hyphen-separated slug.

    Examples:
        "Denim Blue" -> "denim-blue"
        "Café Noir"  -> "cafe-noir"
    """
    value = unicodedata.normalize("NFKD", label)
    value = "".join(c for c in value if not unicodedata.combining(c))
    value = re.sub(r"[^\w\s-]", "", value.lower(), flags=re.UNICODE)
    return re.sub(r"[-\s_]+", "-", value).strip("-")


# =============================================================================
# Records
# =============================================================================

@dataclass
class Term:
    """A taxonomy term (category or attribute value)."""
    id: int
    taxonomy: str
    name: str
    slug: str
    parent_id: Optional[int] = None


@dataclass
class Product:
    """Storefront product as seen by the sync engines.

    ``id`` is 0 until the product is saved for the first time.
    """
    id: int = 0
    name: str = ""
    description: str = ""
    sku: Optional[str] = None
    regular_price: Optional[str] = None
    status: ProductStatus = ProductStatus.PUBLISH
    manage_stock: bool = False
    stock_quantity: Optional[int] = None
    stock_status: StockStatus = StockStatus.IN_STOCK
    category_ids: List[int] = field(default_factory=list)
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_new(self) -> bool:
        return self.id == 0

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self.meta.get(key, default)

    def set_meta(self, key: str, value: Any) -> None:
        self.meta[key] = value


@dataclass
class Address:
    """Billing or shipping address."""
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    postcode: str = ""
    country: str = ""
    email: str = ""
    phone: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name.strip(), self.last_name.strip()) if p)


@dataclass
class OrderLine:
    """One order line item."""
    product_id: int
    name: str
    quantity: float
    variation_id: int = 0


@dataclass
class Order:
    """Storefront order as seen by the export engine."""
    id: int
    number: str = ""
    status: OrderStatus = OrderStatus.PENDING
    customer_id: int = 0  # 0 = guest checkout
    billing: Address = field(default_factory=Address)
    lines: List[OrderLine] = field(default_factory=list)
    customer_note: str = ""
    payment_method_title: str = ""
    created_at: Optional[datetime] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    @property
    def display_number(self) -> str:
        return self.number or str(self.id)

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self.meta.get(key, default)


@dataclass
class Customer:
    """Registered storefront customer."""
    id: int
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    billing: Address = field(default_factory=Address)
    meta: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Repository interfaces
# =============================================================================

class ProductRepository(ABC):
    """Product persistence boundary."""

    @abstractmethod
    def get(self, product_id: int) -> Optional[Product]:
        """Load a product by id."""
        pass

    @abstractmethod
    def find_by_meta(self, key: str, value: Any) -> Optional[Product]:
        """First product whose metadata ``key`` equals ``value``."""
        pass

    @abstractmethod
    def find_by_sku(self, sku: str) -> Optional[Product]:
        """Product with the given SKU."""
        pass

    @abstractmethod
    def save(self, product: Product) -> int:
        """Insert or update a product and return its id."""
        pass

    @abstractmethod
    def find_stale(self, marker_key: str, synced_key: str, before: int, limit: int) -> List[Product]:
        """Products carrying ``marker_key`` whose ``synced_key`` is absent or < ``before``.

        Ordered by id ascending, at most ``limit`` results.
        """
        pass

    def new_product(self) -> Product:
        """An unsaved product shell."""
        return Product()


class TaxonomyRepository(ABC):
    """Category and attribute term management."""

    @abstractmethod
    def ensure_taxonomy(self, taxonomy: str, label: str) -> None:
        """Register an attribute taxonomy if it does not exist."""
        pass

    @abstractmethod
    def find_term(self, taxonomy: str, name: str, parent_id: Optional[int] = None) -> Optional[Term]:
        """Look up a term by name (case-insensitive) or slug."""
        pass

    @abstractmethod
    def create_term(self, taxonomy: str, name: str, parent_id: Optional[int] = None) -> Term:
        """Create a term."""
        pass

    def get_or_create_term(self, taxonomy: str, name: str, parent_id: Optional[int] = None) -> Term:
        term = self.find_term(taxonomy, name, parent_id)
        if term is None:
            term = self.create_term(taxonomy, name, parent_id)
        return term


class OrderRepository(ABC):
    """Order metadata and notes."""

    @abstractmethod
    def get(self, order_id: int) -> Optional[Order]:
        """Load an order by id."""
        pass

    @abstractmethod
    def update_meta(self, order_id: int, key: str, value: Any) -> None:
        """Persist one metadata value on the order."""
        pass

    @abstractmethod
    def add_note(self, order_id: int, note: str) -> None:
        """Append a private order note."""
        pass


class CustomerRepository(ABC):
    """Customer lookup and metadata."""

    @abstractmethod
    def get(self, customer_id: int) -> Optional[Customer]:
        """Load a customer by id."""
        pass

    @abstractmethod
    def update_meta(self, customer_id: int, key: str, value: Any) -> None:
        """Persist one metadata value on the customer."""
        pass
