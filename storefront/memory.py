"""In-memory storefront repositories.

Used by the test suite and the local API runtime. Records are copied on the
way in and out so callers never mutate stored state without ``save``.
"""

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from storefront.base import (
    Customer,
    CustomerRepository,
    Order,
    OrderRepository,
    Product,
    ProductRepository,
    TaxonomyRepository,
    Term,
    slugify,
)


class InMemoryProductRepository(ProductRepository):
    """Dict-backed products keyed by id."""

    def __init__(self):
        self._products: Dict[int, Product] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self.save_count = 0

    def get(self, product_id: int) -> Optional[Product]:
        with self._lock:
            product = self._products.get(product_id)
            return copy.deepcopy(product) if product else None

    def find_by_meta(self, key: str, value: Any) -> Optional[Product]:
        if value in (None, ""):
            return None
        with self._lock:
            for product_id in sorted(self._products):
                product = self._products[product_id]
                if key in product.meta and str(product.meta[key]) == str(value):
                    return copy.deepcopy(product)
        return None

    def find_by_sku(self, sku: str) -> Optional[Product]:
        if not sku:
            return None
        with self._lock:
            for product_id in sorted(self._products):
                product = self._products[product_id]
                if product.sku == sku:
                    return copy.deepcopy(product)
        return None

    def save(self, product: Product) -> int:
        with self._lock:
            if product.id == 0:
                product.id = self._next_id
                self._next_id += 1
            self._products[product.id] = copy.deepcopy(product)
            self.save_count += 1
            return product.id

    def find_stale(self, marker_key: str, synced_key: str, before: int, limit: int) -> List[Product]:
        results = []
        with self._lock:
            for product_id in sorted(self._products):
                product = self._products[product_id]
                if marker_key not in product.meta:
                    continue
                synced = product.meta.get(synced_key)
                if synced is None or int(synced) < before:
                    results.append(copy.deepcopy(product))
                    if len(results) >= limit:
                        break
        return results

    def all(self) -> List[Product]:
        with self._lock:
            return [copy.deepcopy(self._products[i]) for i in sorted(self._products)]


class InMemoryTaxonomyRepository(TaxonomyRepository):
    """Terms grouped by taxonomy."""

    def __init__(self):
        self.taxonomies: Dict[str, str] = {}
        self._terms: Dict[str, List[Term]] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def ensure_taxonomy(self, taxonomy: str, label: str) -> None:
        with self._lock:
            self.taxonomies.setdefault(taxonomy, label)
            self._terms.setdefault(taxonomy, [])

    def find_term(self, taxonomy: str, name: str, parent_id: Optional[int] = None) -> Optional[Term]:
        slug = slugify(name)
        with self._lock:
            for term in self._terms.get(taxonomy, []):
                if term.parent_id != parent_id:
                    continue
                if term.name.lower() == name.lower() or term.slug == slug:
                    return term
        return None

    def create_term(self, taxonomy: str, name: str, parent_id: Optional[int] = None) -> Term:
        with self._lock:
            term = Term(id=self._next_id, taxonomy=taxonomy, name=name, slug=slugify(name), parent_id=parent_id)
            self._next_id += 1
            self._terms.setdefault(taxonomy, []).append(term)
            return term

    def terms(self, taxonomy: str) -> List[Term]:
        with self._lock:
            return list(self._terms.get(taxonomy, []))


class InMemoryOrderRepository(OrderRepository):
    """Dict-backed orders keyed by id."""

    def __init__(self):
        self._orders: Dict[int, Order] = {}
        self._lock = threading.Lock()

    def add(self, order: Order) -> Order:
        with self._lock:
            self._orders[order.id] = copy.deepcopy(order)
        return order

    def get(self, order_id: int) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def update_meta(self, order_id: int, key: str, value: Any) -> None:
        with self._lock:
            self._orders[order_id].meta[key] = value

    def add_note(self, order_id: int, note: str) -> None:
        with self._lock:
            self._orders[order_id].notes.append(note)


class InMemoryCustomerRepository(CustomerRepository):
    """Dict-backed customers keyed by id."""

    def __init__(self):
        self._customers: Dict[int, Customer] = {}
        self._lock = threading.Lock()

    def add(self, customer: Customer) -> Customer:
        with self._lock:
            self._customers[customer.id] = copy.deepcopy(customer)
        return customer

    def get(self, customer_id: int) -> Optional[Customer]:
        with self._lock:
            customer = self._customers.get(customer_id)
            return copy.deepcopy(customer) if customer else None

    def update_meta(self, customer_id: int, key: str, value: Any) -> None:
        with self._lock:
            self._customers[customer_id].meta[key] = value


@dataclass
class InMemoryStorefront:
    """All in-memory repositories bundled together."""
    products: InMemoryProductRepository = field(default_factory=InMemoryProductRepository)
    taxonomy: InMemoryTaxonomyRepository = field(default_factory=InMemoryTaxonomyRepository)
    orders: InMemoryOrderRepository = field(default_factory=InMemoryOrderRepository)
    customers: InMemoryCustomerRepository = field(default_factory=InMemoryCustomerRepository)
