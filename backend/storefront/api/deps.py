"""
Shared FastAPI dependencies.

Long-lived collaborators (payment provider client, signature verifier,
webhook dispatcher) are created in the application lifespan and kept on
``app.state``. Tests replace them through ``app.dependency_overrides``.
"""

import hmac

from fastapi import Header, HTTPException, Request

from storefront.core.config import settings
from storefront.modules.payments.provider import PaymentProvider
from storefront.modules.payments.signature import SignatureVerifier
from storefront.modules.webhooks.dispatcher import WebhookDispatcher


def get_payment_provider(request: Request) -> PaymentProvider:
    return request.app.state.payment_provider


def get_signature_verifier(request: Request) -> SignatureVerifier:
    return request.app.state.signature_verifier


def get_webhook_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.webhook_dispatcher


async def require_admin(
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> None:
    """Require the configured admin key in the X-Admin-Key header."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=503, detail="Admin access not configured")

    if not x_admin_key or not hmac.compare_digest(
        x_admin_key.encode(), settings.admin_api_key.encode()
    ):
        raise HTTPException(status_code=401, detail="Invalid admin key")
