"""
Typed-data construction for x402 payments
Builds ERC-3009 TransferWithAuthorization messages ready for wallet signing
"""

import secrets
import time
from decimal import Decimal, InvalidOperation, ROUND_DOWN

from delve_x402.payments.models import (
    ERC3009_TYPES,
    PRIMARY_TYPE,
    TransferAuthorization,
    TypedData,
    TypedDataDomain,
)

# USDC has 6 decimals
USDC_DECIMALS = 6

# Name/version pair of the deployed USDC contract's EIP-712 domain
TOKEN_NAME = "USD Coin"
TOKEN_VERSION = "2"

DEFAULT_VALID_DURATION_SECONDS = 300


def parse_token_amount(amount: str, decimals: int = USDC_DECIMALS) -> str:
    """
    Convert a decimal token amount to the token's smallest unit.

    Args:
        amount: Amount as a decimal string (e.g. "0.01")
        decimals: Token decimals (default 6 for USDC)

    Returns:
        Amount in smallest unit as a string (e.g. "10000" for 0.01 USDC)

    Raises:
        ValueError: If amount is not a finite, non-negative number
    """
    try:
        parsed = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount}")

    if not parsed.is_finite() or parsed < 0:
        raise ValueError(f"Invalid amount: {amount}")

    smallest = (parsed * Decimal(10 ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return str(int(smallest))


def generate_nonce() -> str:
    """32 random bytes from the OS CSPRNG, 0x-prefixed hex"""
    return "0x" + secrets.token_bytes(32).hex()


def get_token_domain(token_address: str, chain_id: int) -> TypedDataDomain:
    return TypedDataDomain(
        name=TOKEN_NAME,
        version=TOKEN_VERSION,
        chain_id=chain_id,
        verifying_contract=token_address,
    )


def build_payment_typed_data(
    token_address: str,
    recipient_address: str,
    amount: str,
    network: str,
    chain_id: int,
    user_address: str,
    valid_duration_seconds: int = DEFAULT_VALID_DURATION_SECONDS,
) -> TypedData:
    """
    Create EIP-712 typed data for a payment authorization.

    Every call draws a fresh nonce and a validity window starting now.
    Addresses are not validated here.

    Args:
        token_address: Token contract, used as the verifying contract
        recipient_address: Address receiving the payment
        amount: Decimal token amount (e.g. "0.01")
        network: Network name; carried by the header, not the typed data
        chain_id: Chain id of the domain
        user_address: Payer address
        valid_duration_seconds: Length of the validity window

    Returns:
        TypedData ready to be signed
    """
    now = int(time.time())

    authorization = TransferAuthorization(
        from_address=user_address,
        to=recipient_address,
        value=parse_token_amount(amount, USDC_DECIMALS),
        valid_after=str(now),
        valid_before=str(now + valid_duration_seconds),
        nonce=generate_nonce(),
    )

    return TypedData(
        domain=get_token_domain(token_address, chain_id),
        types=dict(ERC3009_TYPES),
        primary_type=PRIMARY_TYPE,
        message=authorization,
    )
