"""Storefront collaborators - platform-side products, taxonomy, orders, customers."""

from storefront.base import (
    Address,
    Customer,
    CustomerRepository,
    Order,
    OrderLine,
    OrderRepository,
    OrderStatus,
    Product,
    ProductRepository,
    ProductStatus,
    StockStatus,
    TaxonomyRepository,
    Term,
    slugify,
)
from storefront.memory import (
    InMemoryCustomerRepository,
    InMemoryOrderRepository,
    InMemoryProductRepository,
    InMemoryStorefront,
    InMemoryTaxonomyRepository,
)

__all__ = [
    "Address",
    "Customer",
    "CustomerRepository",
    "Order",
    "OrderLine",
    "OrderRepository",
    "OrderStatus",
    "Product",
    "ProductRepository",
    "ProductStatus",
    "StockStatus",
    "TaxonomyRepository",
    "Term",
    "slugify",
    "InMemoryCustomerRepository",
    "InMemoryOrderRepository",
    "InMemoryProductRepository",
    "InMemoryStorefront",
    "InMemoryTaxonomyRepository",
]
