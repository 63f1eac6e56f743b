"""
Client-side registry of a wallet's microsubs
Tracks which credits are usable and which one is selected, with
last-wallet-wins handling of overlapping fetches
"""

import asyncio
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Tuple

import structlog
from pydantic import BaseModel, ConfigDict

from delve_x402.cancellation import CancellationToken
from delve_x402.errors import FetchCancelled, X402Error
from delve_x402.microsubs.models import InvalidReason, Microsub, MicrosubList
from delve_x402.payments.models import PaymentMetadata

logger = structlog.get_logger()


class RegistryState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ReadyState(str, Enum):
    HAS_VALID = "has_valid"
    ALL_DISABLED = "all_disabled"


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    reason: Optional[InvalidReason] = None


class RegistrySnapshot(BaseModel):
    """Immutable view of the registry handed to readers and listeners"""

    model_config = ConfigDict(frozen=True)

    wallet_address: Optional[str] = None
    state: RegistryState = RegistryState.EMPTY
    microsubs: Tuple[Microsub, ...] = ()
    selected: Optional[Microsub] = None
    error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.state == RegistryState.LOADING

    @property
    def ready_state(self) -> Optional[ReadyState]:
        if self.state != RegistryState.READY:
            return None
        if any(not m.disabled for m in self.microsubs):
            return ReadyState.HAS_VALID
        return ReadyState.ALL_DISABLED


class MicrosubFetcher(Protocol):
    async def list_microsubs(
        self,
        wallet_address: str,
        only_data_rooms: bool = False,
        token: Optional[CancellationToken] = None,
    ) -> MicrosubList:
        ...


Listener = Callable[[RegistrySnapshot], None]
InvalidSelectionCallback = Callable[[InvalidReason], None]


class MicrosubRegistry:
    """
    Owns the credit list and the current selection for one wallet at a time.

    Methods that start a fetch must be called from a running event loop.
    Only the registry mutates its state; everyone else reads snapshots.

    Args:
        fetcher: Source of microsub lists (normally a MicrosubClient)
        auto_select_valid: Select the first usable credit after each load
        only_data_rooms: Restrict fetches to data-room credits
        on_invalid_selection: Called with the reason when validation fails
    """

    def __init__(
        self,
        fetcher: MicrosubFetcher,
        auto_select_valid: bool = False,
        only_data_rooms: bool = False,
        on_invalid_selection: Optional[InvalidSelectionCallback] = None,
    ):
        self.fetcher = fetcher
        self.auto_select_valid = auto_select_valid
        self.only_data_rooms = only_data_rooms
        self.on_invalid_selection = on_invalid_selection

        self._wallet_address: Optional[str] = None
        self._microsubs: List[Microsub] = []
        self._selected: Optional[Microsub] = None
        self._state = RegistryState.EMPTY
        self._error: Optional[str] = None

        self._alive = True
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    # ===== STATE =====

    @property
    def wallet_address(self) -> Optional[str]:
        return self._wallet_address

    @property
    def state(self) -> RegistryState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state == RegistryState.LOADING

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def available_microsubs(self) -> List[Microsub]:
        return list(self._microsubs)

    @property
    def selected_microsub(self) -> Optional[Microsub]:
        return self._selected

    @property
    def valid_microsubs(self) -> List[Microsub]:
        return [m for m in self._microsubs if not m.disabled]

    @property
    def expired_microsubs(self) -> List[Microsub]:
        return [m for m in self._microsubs if m.is_expired]

    @property
    def exhausted_microsubs(self) -> List[Microsub]:
        return [m for m in self._microsubs if m.is_exhausted]

    @property
    def has_valid_microsubs(self) -> bool:
        return len(self.valid_microsubs) > 0

    @property
    def has_any_microsubs(self) -> bool:
        return len(self._microsubs) > 0

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            wallet_address=self._wallet_address,
            state=self._state,
            microsubs=tuple(self._microsubs),
            selected=self._selected,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for state changes; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ===== TRANSITIONS =====

    def select_wallet(self, wallet_address: Optional[str]) -> Optional[asyncio.Task]:
        """
        Scope the registry to a wallet and start loading its credits.

        The selection and list are cleared immediately so nothing from the
        previous account survives. Any fetch still in flight is cancelled and
        its result will be discarded.

        Returns:
            The task loading the new wallet, or None when the wallet is cleared
        """
        self._ensure_alive()
        self._cancel_inflight()

        self._wallet_address = wallet_address or None
        self._microsubs = []
        self._selected = None
        self._error = None

        if self._wallet_address is None:
            self._state = RegistryState.EMPTY
            self._notify()
            return None

        logger.debug("microsub_wallet_selected", wallet_address=self._wallet_address)
        return self._start_fetch()

    def refetch(self) -> Optional[asyncio.Task]:
        """
        Reload credits for the current wallet.

        The current list and selection stay in place until the fetch resolves.
        """
        self._ensure_alive()
        if self._wallet_address is None:
            return None

        self._cancel_inflight()
        return self._start_fetch()

    def select_microsub(self, tx_hash: Optional[str]) -> None:
        """
        Select a credit by tx_hash; None clears the selection.

        Unknown or disabled credits are ignored without error.
        """
        if tx_hash is None:
            self.clear_selection()
            return

        microsub = self._find(tx_hash)
        if microsub is None or microsub.disabled:
            logger.debug("microsub_selection_ignored", tx_hash=tx_hash, found=microsub is not None)
            return

        self._selected = microsub
        self._notify()

    def clear_selection(self) -> None:
        if self._selected is None:
            return
        self._selected = None
        self._notify()

    def validate_selected_microsub(self) -> ValidationResult:
        """
        Check the selected credit is still usable.

        No selection counts as valid. Precedence: expired, exhausted, invalid.
        """
        if self._selected is None:
            return ValidationResult(is_valid=True)

        reason = self._selected.invalid_reason
        if reason is None:
            return ValidationResult(is_valid=True)

        if self.on_invalid_selection is not None:
            self.on_invalid_selection(reason)
        return ValidationResult(is_valid=False, reason=reason)

    def mark_unusable(self, tx_hash: str, reason: InvalidReason = InvalidReason.INVALID) -> bool:
        """
        Locally flag a credit after a failed use, until the next fetch.

        Returns:
            True if the credit was known
        """
        for index, microsub in enumerate(self._microsubs):
            if microsub.tx_hash != tx_hash:
                continue

            reason = InvalidReason(reason)
            if reason == InvalidReason.EXPIRED:
                update = {"is_expired": True}
            elif reason == InvalidReason.EXHAUSTED:
                update = {"is_exhausted": True, "queries_remaining": 0}
            else:
                update = {"is_valid": False}

            self._microsubs[index] = microsub.model_copy(update=update)
            if self._selected is not None and self._selected.tx_hash == tx_hash:
                self._selected = None

            logger.info("microsub_marked_unusable", tx_hash=tx_hash, reason=reason.value)
            self._notify()
            return True

        return False

    def apply_payment_metadata(self, metadata: Any) -> bool:
        """
        Refetch when a backend response shows the credit list is out of date.

        Returns:
            True if a refetch was scheduled
        """
        if self._wallet_address is None or metadata is None:
            return False

        if not isinstance(metadata, PaymentMetadata):
            metadata = PaymentMetadata.model_validate(metadata)

        stale = (
            metadata.microsub_active is False
            or (metadata.queries_remaining is not None and metadata.queries_remaining <= 0)
            or metadata.is_expired()
            or (
                metadata.settled
                and metadata.tx_hash is not None
                and self._find(metadata.tx_hash) is None
            )
        )
        if not stale:
            return False

        logger.debug(
            "microsub_refetch_after_payment",
            tx_hash=metadata.tx_hash,
            microsub_active=metadata.microsub_active,
            queries_remaining=metadata.queries_remaining,
        )
        self.refetch()
        return True

    async def wait_until_loaded(self) -> None:
        """Wait for the fetch in flight, if any"""
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    def close(self) -> None:
        """Tear down: cancel in-flight work and ignore anything that arrives later"""
        self._alive = False
        self._cancel_inflight()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._listeners.clear()

    async def __aenter__(self) -> "MicrosubRegistry":
        return self

    async def __aexit__(self, *exc_info) -> None:
        task = self._task
        self.close()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ===== INTERNALS =====

    def _ensure_alive(self) -> None:
        if not self._alive:
            raise RuntimeError("MicrosubRegistry is closed")

    def _find(self, tx_hash: str) -> Optional[Microsub]:
        return next((m for m in self._microsubs if m.tx_hash == tx_hash), None)

    def _cancel_inflight(self) -> None:
        if self._token is not None:
            self._token.cancel()
        self._token = None

    def _is_current(self, wallet_address: str, token: CancellationToken) -> bool:
        return (
            self._alive
            and token is self._token
            and not token.cancelled
            and wallet_address == self._wallet_address
        )

    def _start_fetch(self) -> asyncio.Task:
        token = CancellationToken()
        self._token = token
        self._state = RegistryState.LOADING
        self._error = None
        self._notify()

        self._task = asyncio.create_task(self._load(self._wallet_address, token))
        return self._task

    async def _load(self, wallet_address: str, token: CancellationToken) -> None:
        try:
            result = await self.fetcher.list_microsubs(
                wallet_address,
                only_data_rooms=self.only_data_rooms,
                token=token,
            )
        except FetchCancelled:
            logger.debug("microsub_fetch_cancelled", wallet_address=wallet_address)
            return
        except X402Error as e:
            self._fail(wallet_address, token, e.message)
            return
        except (ValueError, TypeError) as e:
            self._fail(wallet_address, token, str(e) or "Failed to load microsubs")
            return
        except Exception as e:
            logger.exception("microsub_fetch_failed", wallet_address=wallet_address)
            self._fail(wallet_address, token, str(e) or "Failed to load microsubs")
            return

        if not self._is_current(wallet_address, token):
            logger.debug("microsub_fetch_discarded", wallet_address=wallet_address)
            return

        self._apply(result)

    def _apply(self, result: MicrosubList) -> None:
        self._microsubs = list(result.microsubs)

        # Re-point the selection at the fresh record so server-side expiry shows
        if self._selected is not None:
            self._selected = self._find(self._selected.tx_hash)

        # Auto-select also replaces a selection that went disabled server-side
        if self.auto_select_valid and (self._selected is None or self._selected.disabled):
            self._selected = next((m for m in self._microsubs if not m.disabled), None)

        self._state = RegistryState.READY
        self._error = None
        self._token = None
        logger.debug(
            "microsubs_loaded",
            wallet_address=self._wallet_address,
            count=len(self._microsubs),
            selected=self._selected.tx_hash if self._selected else None,
        )
        self._notify()

    def _fail(self, wallet_address: str, token: CancellationToken, message: str) -> None:
        if not self._is_current(wallet_address, token):
            logger.debug("microsub_fetch_error_discarded", wallet_address=wallet_address)
            return

        logger.warning("microsub_fetch_error", wallet_address=wallet_address, error=message)
        self._state = RegistryState.ERROR
        self._error = message
        self._token = None
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("microsub_listener_failed")
