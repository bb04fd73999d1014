"""Merchant notifications."""

from conduit_finality.notifications.webhook import (
    SIGNATURE_HEADER,
    WebhookDispatcher,
    build_payload,
    encode_payload,
    sign_payload,
    verify_signature,
)

__all__ = [
    "SIGNATURE_HEADER",
    "WebhookDispatcher",
    "build_payload",
    "encode_payload",
    "sign_payload",
    "verify_signature",
]
