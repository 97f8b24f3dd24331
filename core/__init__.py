"""Core module - storage, security, and observability shared by the sync.

Nothing in here knows about SoftOne or WooCommerce; ERP-specific logic
belongs in /connectors/ and storefront logic in /storefront/.
"""

__version__ = "1.0.0"
