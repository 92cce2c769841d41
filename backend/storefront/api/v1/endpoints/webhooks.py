"""
Webhook Endpoints.

Handles:
- Incoming Mercado Pago payment notifications
- Registration of outbound webhooks (admin)
"""

from typing import Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    status,
)
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel, HttpUrl
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.api.deps import (
    get_payment_provider,
    get_signature_verifier,
    require_admin,
)
from storefront.core.database import get_db, get_session_factory
from storefront.core.exceptions import (
    DuplicateWebhookError,
    OrderPersistenceError,
    StorefrontError,
)
from storefront.models.webhook import WebhookEventType
from storefront.modules.payments.provider import PaymentProvider
from storefront.modules.payments.reconciler import OrderReconciler, return_order_stock
from storefront.modules.payments.signature import SignatureVerifier
from storefront.modules.webhooks.service import WebhookService

router = APIRouter()


# ==================== Schemas ====================


class RegisterWebhookRequest(BaseModel):
    """Register an outbound webhook."""

    url: HttpUrl
    event_type: WebhookEventType


# ==================== Payment notifications ====================


@router.post("/handler", status_code=200)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Any:
    """
    Mercado Pago Webhook Endpoint.

    Security:
    - Validates HMAC-SHA256 signature over id/request-id/ts
    - Returns 400 on missing or invalid signature

    Once the signature is valid the response is always 200, even when
    processing fails, because Mercado Pago retries anything else. The only
    exception is a failed order save (500).

    Headers Required:
    - x-signature: ts=<timestamp>,v1=<signature>
    - x-request-id (optional)
    """
    body = await request.body()
    data_id = request.query_params.get("data.id")

    result = verifier.verify(
        body,
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        data_id,
    )
    if not result.valid:
        logger.warning(f"Rejected payment webhook (data.id={data_id}): {result.reason}")
        raise HTTPException(
            status_code=400,
            detail=f"Webhook Error: {result.reason}",
        )

    # Only the query data.id is covered by the signature
    data = result.payload.get("data")
    body_id = data.get("id") if isinstance(data, dict) else None
    if body_id is not None and str(body_id) != data_id:
        logger.warning(
            f"Rejected payment webhook: body data.id {body_id} "
            f"does not match signed data.id {data_id}"
        )
        raise HTTPException(
            status_code=400,
            detail="Webhook Error: data.id does not match signed id",
        )

    payment_id = data_id
    reconciler = OrderReconciler(db, provider)

    try:
        outcome = await reconciler.reconcile(result.payload)
    except OrderPersistenceError as e:
        logger.error(
            f"Persistence failure for payment {payment_id} "
            f"(order {e.order_id}, attempted {e.attempted_status}): {e}"
        )
        return ORJSONResponse(
            status_code=500,
            content={"received": True, "processed": False, "error": str(e)},
        )
    except StorefrontError as e:
        logger.error(f"Payment webhook for {payment_id} not processed: {e}")
        return {"received": True, "processed": False, "error": str(e)}
    except Exception:
        logger.exception(f"Unexpected error processing payment webhook {payment_id}")
        return {
            "received": True,
            "processed": False,
            "error": "Internal processing error occurred.",
        }

    if outcome.needs_stock_return:
        # Runs after the response has been sent
        background_tasks.add_task(
            return_order_stock,
            session_factory,
            outcome.order_id,
            outcome.stock_lines,
            payment_id,
        )

    return {
        "received": True,
        "processed": outcome.processed,
        "message": outcome.message,
    }


# ==================== Outbound registrations ====================


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def register_webhook(
    request: RegisterWebhookRequest,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Register a URL to be notified about catalog events (admin)."""
    webhooks = WebhookService(db)
    try:
        subscription = await webhooks.register(str(request.url), request.event_type)
    except DuplicateWebhookError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    logger.info(f"Registered webhook {subscription.event_type.value} -> {subscription.url}")
    return {
        "id": subscription.id,
        "url": subscription.url,
        "event_type": subscription.event_type.value,
        "created_at": subscription.created_at.isoformat(),
    }


@router.get("", dependencies=[Depends(require_admin)])
async def list_webhooks(
    event_type: WebhookEventType | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """List registered webhooks (admin)."""
    subscriptions = await WebhookService(db).list_subscriptions(event_type)
    return [
        {
            "id": s.id,
            "url": s.url,
            "event_type": s.event_type.value,
            "created_at": s.created_at.isoformat(),
        }
        for s in subscriptions
    ]


@router.get("/health")
async def webhook_health(request: Request) -> dict:
    """Health check for webhook endpoints."""
    verifier: SignatureVerifier = request.app.state.signature_verifier
    provider = request.app.state.payment_provider

    return {
        "status": "healthy",
        "signature_configured": bool(verifier.secret),
        "provider_configured": provider.config.is_configured,
    }
