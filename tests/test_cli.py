"""
Tests for the payer CLI
"""

import io
import threading

import httpx
import pytest
from rich.console import Console

from delve_x402 import cli as cli_module
from delve_x402.cli import PayerCLI, main
from delve_x402.config import ClientConfig
from delve_x402.microsubs.client import MicrosubClient
from delve_x402.payments.codec import decode_payment_header, encode_payment_header
from tests.conftest import WALLET_A
from tests.factories import ExpiredMicrosubFactory, MicrosubFactory, TransferAuthorizationFactory


@pytest.fixture
def output(monkeypatch) -> io.StringIO:
    buffer = io.StringIO()
    monkeypatch.setattr(cli_module, "console", Console(file=buffer, width=200))
    return buffer


@pytest.fixture
def client_config(test_buyer_account) -> ClientConfig:
    return ClientConfig(
        delve_api_url="http://delve.test",
        payer_private_key=test_buyer_account.key.hex(),
        auto_select_valid=True,
    )


def make_cli(client_config, payment_config, handler=None) -> PayerCLI:
    handler = handler or (lambda request: httpx.Response(200, json={"microsubs": []}))
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    microsub_client = MicrosubClient(client_config.delve_api_url, http_client=http_client)
    return PayerCLI(client_config, payment_config, microsub_client)


class TestPayerCLI:

    @pytest.mark.asyncio
    async def test_list_microsubs(self, client_config, payment_config, output):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"microsubs": [
                {"tx_hash": "0xaa", "is_exhausted": True, "queries_remaining": 0},
                {"tx_hash": "0xbb", "queries_remaining": 4, "query_limit": 25},
            ]})

        cli = make_cli(client_config, payment_config, handler)
        microsubs = await cli.list_microsubs(WALLET_A)
        await cli.client.client.aclose()

        assert [m.tx_hash for m in microsubs] == ["0xaa", "0xbb"]
        assert "Selected: 0xbb" in output.getvalue()

    @pytest.mark.asyncio
    async def test_list_microsubs_backend_error(self, client_config, payment_config, output):
        cli = make_cli(
            client_config,
            payment_config,
            lambda request: httpx.Response(500, json={"error": "Database unavailable"}),
        )

        assert await cli.list_microsubs(WALLET_A) == []
        await cli.client.client.aclose()
        assert "Database unavailable" in output.getvalue()

    def test_display_microsubs(self, client_config, payment_config, output):
        cli = make_cli(client_config, payment_config)

        cli.display_microsubs([MicrosubFactory(agent_id="agent_x"), ExpiredMicrosubFactory()])

        text = output.getvalue()
        assert "agent_x" in text
        assert "active" in text
        assert "expired" in text

    def test_display_no_microsubs(self, client_config, payment_config, output):
        make_cli(client_config, payment_config).display_microsubs([])
        assert "No microsubs found" in output.getvalue()

    @pytest.mark.asyncio
    async def test_sign_payment(self, client_config, payment_config, test_buyer_account, output, monkeypatch):
        prompts = []
        monkeypatch.setattr(cli_module.Confirm, "ask", lambda prompt, **kwargs: prompts.append(prompt) or True)
        cli = make_cli(client_config, payment_config)

        header = await cli.sign_payment("0.25")
        await cli.client.client.aclose()

        decoded = decode_payment_header(header)
        assert decoded.payload.authorization.from_address == test_buyer_account.address
        assert decoded.payload.authorization.value == "250000"
        assert "0.250000" in prompts[0]

    @pytest.mark.asyncio
    async def test_confirm_prompt_runs_off_the_event_loop(self, client_config, payment_config, output, monkeypatch):
        prompt_threads = []

        def ask(prompt, **kwargs):
            prompt_threads.append(threading.get_ident())
            return True

        monkeypatch.setattr(cli_module.Confirm, "ask", ask)
        cli = make_cli(client_config, payment_config)

        assert await cli.sign_payment() is not None
        await cli.client.client.aclose()

        assert prompt_threads and prompt_threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_sign_payment_declined(self, client_config, payment_config, output, monkeypatch):
        monkeypatch.setattr(cli_module.Confirm, "ask", lambda prompt, **kwargs: False)
        cli = make_cli(client_config, payment_config)

        assert await cli.sign_payment() is None
        await cli.client.client.aclose()
        assert "rejected" in output.getvalue().lower()

    @pytest.mark.asyncio
    async def test_sign_payment_without_key(self, payment_config, output):
        config = ClientConfig(delve_api_url="http://delve.test", payer_private_key="")
        cli = make_cli(config, payment_config)

        assert await cli.sign_payment() is None
        await cli.client.client.aclose()
        assert "PAYER_PRIVATE_KEY" in output.getvalue()

    def test_decode_header(self, client_config, payment_config, output):
        auth = TransferAuthorizationFactory()
        header = encode_payment_header(auth, "0x" + "ab" * 65, "base-sepolia")

        make_cli(client_config, payment_config).decode_header(header)

        text = output.getvalue()
        assert '"x402Version": 1' in text
        assert auth.nonce in text

    def test_decode_invalid_header(self, client_config, payment_config, output):
        make_cli(client_config, payment_config).decode_header("not base64!")
        assert "Not a valid payment header" in output.getvalue()


@pytest.mark.asyncio
async def test_main_without_command_prints_usage(output):
    assert await main([]) == 1
    assert "Usage" in output.getvalue()
