"""
Payments Module - Provider notifications.

Features:
- Webhook signature verification
- Payment status to order status mapping
- Order reconciliation with stock return
"""

from storefront.modules.payments.provider import MercadoPagoClient, PaymentProviderConfig
from storefront.modules.payments.reconciler import OrderReconciler
from storefront.modules.payments.signature import SignatureVerifier

__all__ = [
    "MercadoPagoClient",
    "OrderReconciler",
    "PaymentProviderConfig",
    "SignatureVerifier",
]
