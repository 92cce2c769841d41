"""
Outbound Webhooks Module.

Features:
- Registration of third-party URLs per catalog event
- Fan-out of catalog events to registered URLs
"""

from storefront.modules.webhooks.dispatcher import WebhookDispatcher
from storefront.modules.webhooks.service import WebhookService

__all__ = [
    "WebhookDispatcher",
    "WebhookService",
]
