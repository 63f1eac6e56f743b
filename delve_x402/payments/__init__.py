"""
delve-x402 Payment Module
x402 payment headers for USDC micropayments via ERC-3009 authorizations
"""

from delve_x402.payments.models import (
    TransferAuthorization,
    TypedDataDomain,
    TypedData,
    SignedPayload,
    PaymentMetadata,
    PaymentCredential,
    X402_VERSION,
    PAYMENT_HEADER_NAME,
)
from delve_x402.payments.typed_data import (
    build_payment_typed_data,
    get_token_domain,
    generate_nonce,
    parse_token_amount,
    USDC_DECIMALS,
)
from delve_x402.payments.codec import (
    encode_payment_header,
    decode_payment_header,
    inspect_payment_header,
)
from delve_x402.payments.signer import Wallet, LocalAccountWallet

__all__ = [
    "TransferAuthorization",
    "TypedDataDomain",
    "TypedData",
    "SignedPayload",
    "PaymentMetadata",
    "PaymentCredential",
    "X402_VERSION",
    "PAYMENT_HEADER_NAME",
    "build_payment_typed_data",
    "get_token_domain",
    "generate_nonce",
    "parse_token_amount",
    "USDC_DECIMALS",
    "encode_payment_header",
    "decode_payment_header",
    "inspect_payment_header",
    "Wallet",
    "LocalAccountWallet",
]
