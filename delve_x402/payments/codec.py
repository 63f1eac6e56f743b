"""
Payment header codec
Base64-encoded JSON, the exact inverse of the backend's decoder
"""

import base64
import binascii
import json
from typing import Optional

import structlog
from pydantic import ValidationError

from delve_x402.errors import DecodeError, EncodeError
from delve_x402.payments.models import (
    ExactPayload,
    SignedPayload,
    TransferAuthorization,
    X402_VERSION,
)

logger = structlog.get_logger()


def encode_payment_header(
    authorization: TransferAuthorization,
    signature: str,
    network: str,
) -> str:
    """Encode a signed authorization as a base64 payment header"""
    try:
        payload = SignedPayload(
            x402Version=X402_VERSION,
            network=network,
            payload=ExactPayload(authorization=authorization, signature=signature),
        )
        serialized = payload.model_dump_json(by_alias=True)
    except (ValidationError, TypeError, ValueError) as e:
        raise EncodeError(f"Failed to encode payment header: {e}") from e

    return base64.b64encode(serialized.encode()).decode()


def decode_payment_header(header: str) -> SignedPayload:
    """Decode a base64 payment header back into a SignedPayload"""
    try:
        raw = base64.b64decode(header.strip(), validate=True)
    except (binascii.Error, ValueError, AttributeError) as e:
        raise DecodeError(f"Payment header is not valid base64: {e}") from e

    try:
        data = json.loads(raw.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Payment header is not valid JSON: {e}") from e

    try:
        return SignedPayload.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"Payment header has an unexpected shape: {e}") from e


def inspect_payment_header(header: str) -> Optional[SignedPayload]:
    """
    Decode a header for diagnostics only.

    Decode failures are logged and swallowed; callers must not depend on
    the result for control flow.
    """
    try:
        decoded = decode_payment_header(header)
    except DecodeError as e:
        logger.warning("payment_header_decode_failed", error=str(e))
        return None

    authorization = decoded.payload.authorization
    logger.debug(
        "payment_header_decoded",
        network=decoded.network,
        scheme=decoded.scheme,
        from_address=authorization.from_address,
        to_address=authorization.to,
        value=authorization.value,
        valid_before=authorization.valid_before,
    )
    return decoded
