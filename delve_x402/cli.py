"""
delve-x402 Payer CLI
Command-line interface for inspecting microsubs and signing payment headers
"""

import asyncio
import logging
import sys
from typing import List, Optional

import structlog
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from delve_x402.config import ClientConfig, PaymentConfig, get_client_config, get_payment_config
from delve_x402.controller import PaymentHeaderController
from delve_x402.errors import X402Error
from delve_x402.microsubs.client import MicrosubClient
from delve_x402.microsubs.models import Microsub
from delve_x402.microsubs.registry import MicrosubRegistry, RegistryState
from delve_x402.payments.codec import inspect_payment_header
from delve_x402.payments.models import TypedData
from delve_x402.payments.signer import LocalAccountWallet
from delve_x402.payments.typed_data import USDC_DECIMALS

logger = structlog.get_logger()
console = Console()

USAGE = "Usage: delve-x402 [microsubs <wallet> [--data-rooms] | sign [amount] | decode <header>]"


def configure_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Configure structured logging for command-line use"""
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level)),
    )


class PayerCLI:
    """
    Payer CLI for:
    1. Listing a wallet's microsubs and their status
    2. Signing x402 payment headers with a local key
    3. Decoding payment headers for debugging
    """

    def __init__(
        self,
        client_config: Optional[ClientConfig] = None,
        payment_config: Optional[PaymentConfig] = None,
        microsub_client: Optional[MicrosubClient] = None,
    ):
        self.config = client_config or get_client_config()
        self._payment_config = payment_config
        self.client = microsub_client or MicrosubClient(
            self.config.delve_api_url,
            timeout_s=self.config.delve_timeout,
        )

    @property
    def payment_config(self) -> PaymentConfig:
        if self._payment_config is None:
            self._payment_config = get_payment_config()
        return self._payment_config

    async def list_microsubs(self, wallet_address: str, only_data_rooms: bool = False) -> List[Microsub]:
        """Load a wallet's microsubs through the registry"""
        registry = MicrosubRegistry(
            self.client,
            auto_select_valid=self.config.auto_select_valid,
            only_data_rooms=only_data_rooms or self.config.only_data_rooms,
        )
        async with registry:
            registry.select_wallet(wallet_address)
            await registry.wait_until_loaded()

            if registry.state == RegistryState.ERROR:
                console.print(f"[red]Failed to load microsubs: {registry.error}[/red]")
                return []

            selected = registry.selected_microsub
            if selected is not None:
                console.print(f"Selected: [cyan]{selected.tx_hash}[/cyan]")
            return registry.available_microsubs

    def display_microsubs(self, microsubs: List[Microsub]):
        """Display microsubs in a formatted table"""
        if not microsubs:
            console.print("[yellow]No microsubs found[/yellow]")
            return

        table = Table(title="Microsubs", show_header=True, header_style="bold magenta")

        table.add_column("Tx Hash", style="cyan", no_wrap=True)
        table.add_column("Agent", style="white")
        table.add_column("Remaining", justify="right", style="blue")
        table.add_column("Expires", style="yellow")
        table.add_column("Status", style="green")

        for microsub in microsubs:
            remaining = str(microsub.queries_remaining)
            if microsub.query_limit is not None:
                remaining = f"{remaining}/{microsub.query_limit}"

            reason = microsub.invalid_reason
            table.add_row(
                microsub.tx_hash[:18] + "...",
                microsub.agent_id or "-",
                remaining,
                microsub.expires_at.isoformat() if microsub.expires_at else "-",
                "[green]active[/green]" if reason is None else f"[red]{reason.value}[/red]",
            )

        console.print(table)

    async def _confirm_signature(self, typed_data: TypedData) -> bool:
        value = int(typed_data.message.value) / 10 ** USDC_DECIMALS
        # Confirm.ask blocks on stdin
        return await asyncio.to_thread(
            Confirm.ask,
            f"Sign payment of [bold]{value:.6f}[/bold] USDC to {typed_data.message.to}?",
            console=console,
        )

    async def sign_payment(self, amount: Optional[str] = None) -> Optional[str]:
        """Sign a fresh payment header with the configured private key"""
        if not self.config.payer_private_key:
            console.print("[red]PAYER_PRIVATE_KEY is not configured[/red]")
            return None

        wallet = LocalAccountWallet(self.config.payer_private_key, confirm=self._confirm_signature)
        controller = PaymentHeaderController(self.payment_config, wallet)
        try:
            header = await controller.build_and_sign_payment_header(amount)
        except X402Error as e:
            console.print(f"[red]{e.message}[/red]")
            return None

        console.print(header)
        return header

    def decode_header(self, header: str) -> None:
        decoded = inspect_payment_header(header)
        if decoded is None:
            console.print("[red]Not a valid payment header[/red]")
            return
        console.print_json(decoded.model_dump_json(by_alias=True))

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for payer CLI"""
    args = list(sys.argv[1:] if argv is None else argv)

    config = get_client_config()
    configure_logging(config.log_level, config.log_format)

    if not args:
        console.print(USAGE)
        return 1

    cli = PayerCLI(config)
    command = args[0]
    status = 0

    try:
        if command == "microsubs" and len(args) > 1:
            microsubs = await cli.list_microsubs(args[1], only_data_rooms="--data-rooms" in args[2:])
            cli.display_microsubs(microsubs)

        elif command == "sign":
            header = await cli.sign_payment(args[1] if len(args) > 1 else None)
            status = 0 if header else 1

        elif command == "decode" and len(args) > 1:
            cli.decode_header(args[1])

        else:
            console.print("[red]Invalid command[/red]")
            console.print(USAGE)
            status = 1

    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        status = 1
    finally:
        await cli.close()

    return status


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
