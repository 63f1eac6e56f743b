"""
x402-compliant payment models for delve-x402
Wire shapes for ERC-3009 transfer authorizations and payment headers
"""

from typing import Dict, List, Literal, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


X402_VERSION = 1
PAYMENT_SCHEME = "exact"
PAYMENT_HEADER_NAME = "X-PAYMENT"
PRIMARY_TYPE = "TransferWithAuthorization"

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

# EIP-3009: transferWithAuthorization
ERC3009_TYPES = {
    PRIMARY_TYPE: [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


class TransferAuthorization(BaseModel):
    """EIP-712 typed data message for payment authorization"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_address: str = Field(alias="from")
    to: str
    value: str = Field(description="Amount in smallest unit (USDC has 6 decimals)")
    valid_after: str = Field(alias="validAfter")
    valid_before: str = Field(alias="validBefore")
    nonce: str = Field(description="32-byte random hex value")

    @field_validator("value", "valid_after", "valid_before", mode="before")
    @classmethod
    def coerce_integer_string(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @model_validator(mode="after")
    def check_window(self):
        if int(self.valid_before) <= int(self.valid_after):
            raise ValueError("validBefore must be later than validAfter")
        return self


class TypedDataDomain(BaseModel):
    """EIP-712 domain separator for the token contract"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    version: str
    chain_id: int = Field(alias="chainId", gt=0)
    verifying_contract: str = Field(alias="verifyingContract")


class TypedData(BaseModel):
    """Signable typed-data envelope handed to the wallet"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    domain: TypedDataDomain
    types: Dict[str, List[Dict[str, str]]] = Field(default_factory=lambda: dict(ERC3009_TYPES))
    primary_type: Literal["TransferWithAuthorization"] = Field(default=PRIMARY_TYPE, alias="primaryType")
    message: TransferAuthorization

    def to_eip712(self) -> dict:
        """Full EIP-712 structure with integer-typed numeric fields"""
        message = self.message
        nonce = message.nonce if message.nonce.startswith("0x") else f"0x{message.nonce}"
        return {
            "types": {"EIP712Domain": EIP712_DOMAIN_TYPE, **self.types},
            "primaryType": self.primary_type,
            "domain": self.domain.model_dump(by_alias=True),
            "message": {
                "from": message.from_address,
                "to": message.to,
                "value": int(message.value),
                "validAfter": int(message.valid_after),
                "validBefore": int(message.valid_before),
                "nonce": nonce,
            },
        }


class ExactPayload(BaseModel):
    """Signature plus the authorization it covers"""

    model_config = ConfigDict(frozen=True)

    authorization: TransferAuthorization
    signature: str


class SignedPayload(BaseModel):
    """x402 payment payload carried in the payment header"""

    model_config = ConfigDict(frozen=True)

    x402Version: int = X402_VERSION
    scheme: Literal["exact"] = PAYMENT_SCHEME
    network: str
    payload: ExactPayload


class PaymentMetadata(BaseModel):
    """Verification and settlement details returned by the backend"""

    verified: bool = False
    settled: bool = False
    from_address: Optional[str] = None
    facilitator: Optional[str] = None
    tx_hash: Optional[str] = None
    settlement_error: Optional[str] = None
    microsub_active: Optional[bool] = None
    queries_remaining: Optional[int] = None
    expires_at: Optional[datetime] = None
    htn_generation_status: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= (now or datetime.now(timezone.utc))


class PaymentCredential(BaseModel):
    """
    What a payment-gated request carries: either a fresh payment header
    or the tx_hash of an existing microsub, never both and never neither.
    """

    model_config = ConfigDict(frozen=True)

    payment_header: Optional[str] = None
    tx_hash: Optional[str] = None
    expected_amount: Optional[str] = None
    query_limit: Optional[int] = None
    expiration_days: Optional[int] = None

    @model_validator(mode="after")
    def check_exactly_one(self):
        if (self.payment_header is None) == (self.tx_hash is None):
            raise ValueError("Exactly one of payment_header or tx_hash is required")
        return self

    @property
    def uses_microsub(self) -> bool:
        return self.tx_hash is not None

    def to_request_fields(self) -> dict:
        """Body fields for the paid request"""
        return self.model_dump(exclude_none=True)

    def to_headers(self) -> dict:
        """Request headers; empty when a microsub is referenced by tx_hash"""
        if self.payment_header is None:
            return {}
        return {PAYMENT_HEADER_NAME: self.payment_header}
