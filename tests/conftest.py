"""
Pytest configuration and shared fixtures
"""

import asyncio
from typing import Dict, List, Optional, Union

import pytest
from eth_account import Account

from delve_x402.cancellation import CancellationToken
from delve_x402.config import PaymentConfig
from delve_x402.microsubs.models import MicrosubList
from delve_x402.microsubs.registry import MicrosubRegistry
from delve_x402.payments.models import TypedData

WALLET_A = "0x1111111111111111111111111111111111111111"
WALLET_B = "0x2222222222222222222222222222222222222222"
RECIPIENT = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb1"


class FakeFetcher:
    """In-memory microsub source; a gate per wallet holds its response back"""

    def __init__(self):
        self.responses: Dict[str, Union[MicrosubList, Exception]] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[tuple] = []

    async def list_microsubs(
        self,
        wallet_address: str,
        only_data_rooms: bool = False,
        token: Optional[CancellationToken] = None,
    ) -> MicrosubList:
        self.calls.append((wallet_address, only_data_rooms))
        result = self.responses.get(wallet_address, MicrosubList())

        gate = self.gates.get(wallet_address)
        if gate is not None:
            await gate.wait()

        if isinstance(result, Exception):
            raise result
        return result


class FakeWallet:
    """Wallet that records sign requests and returns a fixed signature"""

    def __init__(self, address: str = WALLET_A, error: Optional[Exception] = None):
        self.address = address
        self.error = error
        self.requests: List[TypedData] = []

    async def sign_typed_data(self, typed_data: TypedData) -> str:
        self.requests.append(typed_data)
        if self.error is not None:
            raise self.error
        return "0x" + "ab" * 65


@pytest.fixture
def test_buyer_account():
    """Create a test buyer account"""
    return Account.from_key("0xabcdef1234567890abcdef1234567890abcdef1234567890abcdef1234567890")


@pytest.fixture
def payment_config() -> PaymentConfig:
    return PaymentConfig(
        recipient_address=RECIPIENT,
        chain_id=84532,
        network="base-sepolia",
        default_amount="0.01",
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def registry(fetcher) -> MicrosubRegistry:
    registry = MicrosubRegistry(fetcher)
    yield registry
    registry.close()


@pytest.fixture
def fake_wallet() -> FakeWallet:
    return FakeWallet()
