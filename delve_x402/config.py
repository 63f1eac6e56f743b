"""
delve-x402 Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

import re
from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_address(address: str) -> bool:
    """Check an address is 0x followed by 40 hex characters"""
    return bool(address) and ADDRESS_PATTERN.match(address) is not None


class PaymentConfig(BaseSettings):
    """Payment parameters passed explicitly into the builder and controller"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Token Configuration
    token_address: str = Field(
        default="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        description="ERC-20 token contract address (USDC on Base Sepolia)"
    )
    recipient_address: str = Field(description="Payment recipient address")

    # Network Configuration
    network: str = Field(default="base-sepolia", description="Blockchain network name")
    chain_id: int = Field(default=84532, description="Chain ID for wallet connection")

    # Pricing
    default_amount: str = Field(default="0.01", description="Payment amount in token units")
    query_limit: int = Field(default=25, description="Queries granted by one payment")
    expiration_days: int = Field(default=30, description="Days a microsub stays valid")
    valid_duration_seconds: int = Field(default=300, description="Authorization validity window")

    @field_validator("token_address", "recipient_address")
    @classmethod
    def validate_address(cls, v):
        if not is_valid_address(v):
            raise ValueError(f'Invalid address: "{v}"')
        return v

    @field_validator("chain_id")
    @classmethod
    def validate_chain_id(cls, v):
        if v <= 0:
            raise ValueError(f'Invalid chain id: "{v}"')
        return v


class ClientConfig(BaseSettings):
    """Configuration for the client side: backend connection, wallet and logging"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Backend Connection
    delve_api_url: str = Field(default="http://localhost:8000", description="Delve backend API URL")
    delve_timeout: float = Field(default=30.0, description="Request timeout in seconds")

    # Wallet Configuration
    payer_private_key: str = Field(default="", description="Private key used by the CLI signer")

    # Microsub Selection
    only_data_rooms: bool = Field(default=False)
    auto_select_valid: bool = Field(default=True)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    @field_validator("payer_private_key")
    @classmethod
    def validate_private_key(cls, v):
        if v and not v.startswith("0x"):
            return f"0x{v}"
        return v


# Singleton instances
_payment_config: PaymentConfig | None = None
_client_config: ClientConfig | None = None


def get_payment_config() -> PaymentConfig:
    """Get or create payment configuration singleton"""
    global _payment_config
    if _payment_config is None:
        _payment_config = PaymentConfig()
    return _payment_config


def get_client_config() -> ClientConfig:
    """Get or create client configuration singleton"""
    global _client_config
    if _client_config is None:
        _client_config = ClientConfig()
    return _client_config
