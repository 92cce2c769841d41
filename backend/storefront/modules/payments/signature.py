"""
Mercado Pago Webhook Signature Verification.

Mercado Pago signs notifications with HMAC-SHA256 over a manifest built
from the notification URL and headers:

    id:<data.id>;request-id:<x-request-id>;ts:<ts>

The request-id part is only present when the header was sent. The
signature header format is:

    x-signature: ts=<timestamp>,v1=<hex signature>

Security Note:
Notifications MUST be verified before the body is trusted. Cheap
precondition checks run first; the constant-time comparison runs last.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass
class VerificationResult:
    """Outcome of a signature check."""

    valid: bool
    reason: str
    payload: dict[str, Any] | None = None


def build_manifest(data_id: str, timestamp: str, request_id: str | None = None) -> str:
    """Build the string that the provider signs."""
    parts = [f"id:{data_id}"]
    if request_id:
        parts.append(f"request-id:{request_id}")
    parts.append(f"ts:{timestamp}")
    return ";".join(parts)


def sign_manifest(manifest: str, secret: str) -> str:
    """HMAC-SHA256 of the manifest, hex encoded."""
    return hmac.new(
        secret.encode("utf-8"),
        manifest.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def parse_signature_header(signature_header: str) -> dict[str, str]:
    """
    Split ``ts=...,v1=...`` into a dict.

    Parts without ``=`` are ignored.
    """
    parts: dict[str, str] = {}
    for part in signature_header.split(","):
        key, sep, value = part.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


class SignatureVerifier:
    """
    Verifier for Mercado Pago webhook notifications.

    Usage:
        verifier = SignatureVerifier(settings.mp_webhook_secret)
        result = verifier.verify(
            body,
            request.headers.get("x-signature"),
            request.headers.get("x-request-id"),
            request.query_params.get("data.id"),
        )
        if not result.valid:
            raise HTTPException(400, result.reason)
    """

    def __init__(self, secret: str | None) -> None:
        self.secret = secret or ""

        if not self.secret:
            logger.warning(
                "MP_WEBHOOK_SECRET not configured. "
                "Webhook signature verification will fail!"
            )

    def verify(
        self,
        body: bytes | None,
        signature_header: str | None,
        request_id: str | None,
        data_id: str | None,
    ) -> VerificationResult:
        """
        Verify a notification and parse its body.

        Args:
            body: Raw request body bytes
            signature_header: x-signature header value
            request_id: x-request-id header value (optional)
            data_id: data.id query parameter

        Returns:
            VerificationResult with the parsed payload when valid
        """
        if not signature_header:
            return VerificationResult(False, "Missing x-signature header")

        if not self.secret:
            logger.error("Webhook secret not configured")
            return VerificationResult(False, "Webhook secret not configured")

        if not body:
            return VerificationResult(False, "Empty request body")

        parts = parse_signature_header(signature_header)
        timestamp = parts.get("ts")
        received_signature = parts.get("v1")

        if not timestamp or not received_signature:
            return VerificationResult(
                False, "Invalid x-signature format (ts or v1 missing)"
            )

        if not data_id:
            return VerificationResult(False, "Missing data.id query parameter")

        manifest = build_manifest(data_id, timestamp, request_id)
        expected_signature = sign_manifest(manifest, self.secret)

        try:
            received_bytes = bytes.fromhex(received_signature)
        except ValueError:
            logger.warning("Webhook signature is not valid hex")
            return VerificationResult(False, "Invalid signature")

        expected_bytes = bytes.fromhex(expected_signature)
        if len(received_bytes) != len(expected_bytes):
            logger.warning("Webhook signature length mismatch")
            return VerificationResult(False, "Invalid signature (wrong length)")

        # Constant-time comparison to prevent timing attacks
        if not hmac.compare_digest(received_bytes, expected_bytes):
            logger.warning(f"Webhook signature verification failed for data.id={data_id}")
            return VerificationResult(False, "Invalid signature")

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Valid signature but malformed body: {e}")
            return VerificationResult(False, "Malformed notification body")

        if not isinstance(payload, dict):
            return VerificationResult(False, "Malformed notification body")

        return VerificationResult(True, "Signature verified", payload)
