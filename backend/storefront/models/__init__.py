"""
Database models.
"""

from storefront.models.shop import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentResult,
    Product,
)
from storefront.models.webhook import WebhookEventType, WebhookSubscription

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentResult",
    "Product",
    "WebhookEventType",
    "WebhookSubscription",
]
