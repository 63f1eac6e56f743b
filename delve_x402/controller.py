"""
Payment header controller
Decides between reusing a microsub and signing a fresh x402 payment
"""

import asyncio
from typing import Any, Callable, List, Optional

import structlog

from delve_x402.config import PaymentConfig
from delve_x402.errors import (
    InvalidAmount,
    SigningRejected,
    WalletError,
    WalletNotConnected,
    X402Error,
)
from delve_x402.microsubs.classifier import is_microsub_error
from delve_x402.microsubs.registry import MicrosubRegistry
from delve_x402.payments.codec import encode_payment_header
from delve_x402.payments.models import PaymentCredential
from delve_x402.payments.signer import Wallet
from delve_x402.payments.typed_data import build_payment_typed_data

logger = structlog.get_logger()

# EIP-1193 "user rejected request"
USER_REJECTED_CODE = 4001
_REJECTION_MARKERS = ("reject", "denied", "declined")


def _is_rejection(error: Exception) -> bool:
    if getattr(error, "code", None) == USER_REJECTED_CODE:
        return True
    text = str(error).lower()
    return any(marker in text for marker in _REJECTION_MARKERS)


class PaymentHeaderController:
    """
    Builds and signs X402 payment headers.

    Two payment modes:
    1. New payment: signs a fresh authorization with the connected wallet
    2. Existing microsub: skips signing; the request carries the microsub's
       tx_hash instead of a payment_header

    Headers are never cached: every signed header has its own nonce.
    Concurrent calls are not de-duplicated, so callers should not trigger a
    new payment while is_loading is True.

    Args:
        config: Token, recipient, network and pricing parameters
        wallet: Connected wallet, if any
    """

    def __init__(self, config: PaymentConfig, wallet: Optional[Wallet] = None):
        self.config = config
        self._wallet = wallet
        self._pending = 0
        self._error: Optional[X402Error] = None
        self._listeners: List[Callable[["PaymentHeaderController"], None]] = []

    @property
    def wallet_address(self) -> Optional[str]:
        return self._wallet.address if self._wallet is not None else None

    @property
    def is_connected(self) -> bool:
        return self._wallet is not None and bool(self._wallet.address)

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def error(self) -> Optional[X402Error]:
        return self._error

    def connect_wallet(self, wallet: Wallet) -> None:
        self._wallet = wallet
        self._notify()

    def disconnect_wallet(self) -> None:
        self._wallet = None
        self._notify()

    def reset(self) -> None:
        """Clear the last error"""
        self._error = None
        self._notify()

    def subscribe(self, listener: Callable[["PaymentHeaderController"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def build_and_sign_payment_header(
        self,
        amount: Optional[str] = None,
        skip_signing: bool = False,
    ) -> Optional[str]:
        """
        Build and sign a payment header.

        Args:
            amount: Decimal token amount. Defaults to config.default_amount.
            skip_signing: Return None without touching the wallet; the caller
                uses an existing microsub's tx_hash instead.

        Returns:
            Base64 payment header, or None if skip_signing is True

        Raises:
            WalletNotConnected: If no wallet is connected
            InvalidAmount: If amount is not a valid decimal
            SigningRejected: If the user declines the signature
            WalletError: If the wallet fails for any other reason
        """
        if skip_signing:
            return None

        self._error = None
        self._pending += 1
        self._notify()
        try:
            return await self._sign(amount or self.config.default_amount)
        except X402Error as e:
            self._error = e
            raise
        finally:
            self._pending -= 1
            self._notify()

    async def _sign(self, amount: str) -> str:
        wallet = self._wallet
        if wallet is None or not wallet.address:
            raise WalletNotConnected()

        try:
            typed_data = build_payment_typed_data(
                token_address=self.config.token_address,
                recipient_address=self.config.recipient_address,
                amount=amount,
                network=self.config.network,
                chain_id=self.config.chain_id,
                user_address=wallet.address,
                valid_duration_seconds=self.config.valid_duration_seconds,
            )
        except ValueError as e:
            raise InvalidAmount(str(e) or None) from e

        try:
            signature = await wallet.sign_typed_data(typed_data)
        except (X402Error, asyncio.CancelledError):
            raise
        except Exception as e:
            if _is_rejection(e):
                logger.info("payment_signature_rejected", address=wallet.address)
                raise SigningRejected(str(e) or None) from e
            logger.error("payment_signing_failed", address=wallet.address, error=str(e))
            raise WalletError(str(e) or None) from e

        header = encode_payment_header(typed_data.message, signature, self.config.network)
        logger.info(
            "payment_header_signed",
            from_address=wallet.address,
            value=typed_data.message.value,
            network=self.config.network,
        )
        return header

    async def prepare_payment(
        self,
        registry: Optional[MicrosubRegistry] = None,
        amount: Optional[str] = None,
    ) -> PaymentCredential:
        """
        Produce the credential for one paid request.

        A selected microsub that still validates is used by reference;
        otherwise a fresh header is signed.
        """
        expected_amount = amount or self.config.default_amount
        request_fields = dict(
            expected_amount=expected_amount,
            query_limit=self.config.query_limit,
            expiration_days=self.config.expiration_days,
        )

        if registry is not None:
            selected = registry.selected_microsub
            if selected is not None and registry.validate_selected_microsub().is_valid:
                await self.build_and_sign_payment_header(amount, skip_signing=True)
                logger.debug("payment_using_microsub", tx_hash=selected.tx_hash)
                return PaymentCredential(tx_hash=selected.tx_hash, **request_fields)

        header = await self.build_and_sign_payment_header(amount)
        return PaymentCredential(payment_header=header, **request_fields)

    async def fallback_after_failure(
        self,
        failure: Any,
        credential: PaymentCredential,
        registry: Optional[MicrosubRegistry] = None,
        amount: Optional[str] = None,
    ) -> Optional[PaymentCredential]:
        """
        Recover from a failed request that used a microsub.

        Microsub failures mark the credit unusable and return a freshly signed
        credential. Anything else is re-raised (or None for non-exceptions).
        """
        info = is_microsub_error(failure)
        if not credential.uses_microsub or not info.is_microsub_error:
            if isinstance(failure, BaseException):
                raise failure
            return None

        logger.info(
            "microsub_failed_falling_back",
            tx_hash=credential.tx_hash,
            error_type=info.error_type.value,
        )
        if registry is not None:
            registry.mark_unusable(credential.tx_hash, info.error_type)

        return await self.prepare_payment(registry=None, amount=amount)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("payment_listener_failed")
