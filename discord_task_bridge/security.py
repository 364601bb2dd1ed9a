"""Utilities for validating Discord interaction signatures."""

from __future__ import annotations

import binascii
import hmac

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

DISCORD_SIGNATURE_HEADER = "X-Signature-Ed25519"
DISCORD_TIMESTAMP_HEADER = "X-Signature-Timestamp"


def _signed_message(timestamp: str, body: str | bytes) -> bytes:
    raw_body = body if isinstance(body, bytes) else body.encode("utf-8")
    return timestamp.encode("utf-8") + raw_body


def sign_payload(private_key: Ed25519PrivateKey, timestamp: str, body: str | bytes) -> str:
    """Return the hex signature Discord would send for *body* at *timestamp*."""

    return private_key.sign(_signed_message(timestamp, body)).hex()


def verify_discord_signature(
    *, public_key: str | None, signature: str | None, timestamp: str | None, body: str | bytes
) -> bool:
    """Check the detached Ed25519 signature over ``timestamp + body``.

    *body* must be the raw request body exactly as received. Every failure
    mode, including malformed hex and wrong key sizes, yields False.
    """

    if not public_key or not signature or not timestamp:
        return False

    try:
        key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key))
        key.verify(bytes.fromhex(signature), _signed_message(timestamp, body))
    except InvalidSignature:
        return False
    except (ValueError, TypeError, binascii.Error) as exc:
        structlog.get_logger().warning("signature_decode_failed", error_type=type(exc).__name__)
        return False
    return True


def is_authorized_service_call(*, api_key: str | None, authorization: str | None) -> bool:
    """Check a ``Bearer`` header against the configured service API key."""

    if not api_key or not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip().encode("utf-8"), api_key.encode("utf-8"))
