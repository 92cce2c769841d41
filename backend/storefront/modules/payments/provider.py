"""
Mercado Pago API Client.

Fetches authoritative payment details for incoming notifications.
The client is created once at startup and injected where needed.
"""

from typing import Any, Protocol
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from storefront.core.config import Settings
from storefront.core.exceptions import (
    PaymentProviderError,
    ProviderNotConfiguredError,
    UpstreamDataError,
)


class Payer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None


class Card(BaseModel):
    model_config = ConfigDict(extra="ignore")

    last_four_digits: str | None = None


class ProviderPayment(BaseModel):
    """Payment as returned by ``GET /v1/payments/{id}``."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    status: str = Field(min_length=1)
    external_reference: str = Field(min_length=1)
    date_last_updated: str | None = None
    date_created: str | None = None
    payer: Payer | None = None
    payment_method_id: str | None = None
    card: Card | None = None

    @property
    def update_time(self) -> str | None:
        return self.date_last_updated or self.date_created

    @property
    def payer_email(self) -> str | None:
        return self.payer.email if self.payer else None

    @property
    def card_last_four(self) -> str | None:
        return self.card.last_four_digits if self.card else None

    @classmethod
    def from_response(cls, payment_id: str, data: Any) -> "ProviderPayment":
        """
        Validate a raw provider response.

        Raises:
            UpstreamDataError: If status or external_reference is missing
        """
        if not isinstance(data, dict):
            raise UpstreamDataError(f"Unexpected provider response for payment {payment_id}")

        try:
            return cls.model_validate({"id": payment_id, **data})
        except ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise UpstreamDataError(
                f"Invalid provider response for payment {payment_id}: "
                f"missing or invalid {', '.join(missing) or 'fields'}"
            ) from e


class PaymentProviderConfig(BaseModel):
    """Connection settings for the payment provider."""

    access_token: str = ""
    base_url: str = "https://api.mercadopago.com"
    timeout: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentProviderConfig":
        return cls(
            access_token=settings.mp_access_token,
            base_url=settings.mp_api_base_url,
            timeout=settings.mp_api_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token)


class PaymentProvider(Protocol):
    """Anything that can fetch a payment by id."""

    async def get_payment(self, payment_id: str) -> ProviderPayment: ...


class MercadoPagoClient:
    """
    Async client for the Mercado Pago payments API.

    Usage:
        client = MercadoPagoClient(PaymentProviderConfig.from_settings(settings))
        payment = await client.get_payment("123456")
        await client.close()
    """

    def __init__(
        self,
        config: PaymentProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {config.access_token}"},
        )

        if not config.is_configured:
            logger.warning("MP_ACCESS_TOKEN not configured")

    async def close(self) -> None:
        await self._client.aclose()

    async def get_payment(self, payment_id: str) -> ProviderPayment:
        """
        Fetch payment details by id.

        Raises:
            ProviderNotConfiguredError: If no access token is set
            PaymentProviderError: On transport or HTTP errors
            UpstreamDataError: If the payment lacks required fields
        """
        if not self.config.is_configured:
            raise ProviderNotConfiguredError("Payment provider is not configured")

        try:
            response = await self._client.get(f"/v1/payments/{quote(payment_id, safe='')}")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Mercado Pago HTTP error for payment {payment_id}: "
                f"{e.response.status_code}"
            )
            raise PaymentProviderError(
                f"Provider returned {e.response.status_code} for payment {payment_id}"
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Mercado Pago request error for payment {payment_id}: {e}")
            raise PaymentProviderError(f"Provider unreachable: {e}") from e
        except ValueError as e:
            raise UpstreamDataError(
                f"Provider returned invalid JSON for payment {payment_id}"
            ) from e

        payment = ProviderPayment.from_response(payment_id, data)
        logger.info(f"Fetched payment {payment_id} from provider: status={payment.status}")
        return payment
