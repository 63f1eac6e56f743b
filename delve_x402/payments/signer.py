"""
Signing capability for payment authorizations
A wallet signs typed data and returns a hex signature, or refuses
"""

import inspect
from typing import Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

import structlog
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from delve_x402.errors import SigningRejected
from delve_x402.payments.models import TypedData

logger = structlog.get_logger()

ConfirmCallback = Callable[[TypedData], Union[bool, Awaitable[bool]]]


@runtime_checkable
class Wallet(Protocol):
    """Anything that can sign typed data on behalf of an address"""

    address: str

    async def sign_typed_data(self, typed_data: TypedData) -> str:
        """Return a 0x-prefixed signature or raise SigningRejected"""
        ...


class LocalAccountWallet:
    """
    Wallet backed by a local private key.

    An optional confirm callback stands in for the wallet's approval prompt:
    returning False rejects the request.
    """

    def __init__(self, private_key: str, confirm: Optional[ConfirmCallback] = None):
        self.account = Account.from_key(private_key)
        self.address = self.account.address
        self._confirm = confirm

    async def sign_typed_data(self, typed_data: TypedData) -> str:
        if self._confirm is not None:
            approved = self._confirm(typed_data)
            if inspect.isawaitable(approved):
                approved = await approved
            if not approved:
                logger.info("signature_request_rejected", address=self.address)
                raise SigningRejected()

        full_message = typed_data.to_eip712()
        message = full_message["message"]
        message["from"] = Web3.to_checksum_address(message["from"])
        message["to"] = Web3.to_checksum_address(message["to"])
        full_message["domain"]["verifyingContract"] = Web3.to_checksum_address(
            full_message["domain"]["verifyingContract"]
        )

        encoded = encode_typed_data(full_message=full_message)
        signed = self.account.sign_message(encoded)
        return Web3.to_hex(signed.signature)
