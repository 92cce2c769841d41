"""
Shop Module - E-commerce functionality.

Features:
- Product catalog
- Order lookup
- Inventory tracking and stock return
"""

from storefront.modules.shop.service import ShopService

__all__ = [
    "ShopService",
]
