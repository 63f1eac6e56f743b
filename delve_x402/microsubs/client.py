"""
HTTP client for the backend's microsub list endpoint
"""

from typing import Any, Optional

import httpx
import structlog

from delve_x402.cancellation import CancellationToken
from delve_x402.config import is_valid_address
from delve_x402.errors import NetworkFailure, RequestTimeout
from delve_x402.microsubs.models import MicrosubList, parse_microsub_list

logger = structlog.get_logger()

DEFAULT_TIMEOUT_S = 30.0


def error_from_response(response: httpx.Response) -> NetworkFailure:
    """Build a NetworkFailure from a non-2xx backend response"""
    message = f"Request failed with status {response.status_code}"
    details: Any = None

    try:
        data = response.json()
    except ValueError:
        text = response.text
        if text:
            message = text[:200]
        elif response.reason_phrase:
            message = response.reason_phrase
    else:
        if isinstance(data, dict):
            error = data.get("error")
            if error:
                message = error if isinstance(error, str) else str(error)
            elif data.get("message"):
                message = str(data["message"])
            details = data.get("details")

    return NetworkFailure(message, status_code=response.status_code, details=details)


class MicrosubClient:
    """
    Client for listing a wallet's microsubs.

    Args:
        api_url: Base URL of the backend
        timeout_s: Request timeout in seconds. Default: 30.0
        http_client: Optional shared httpx.AsyncClient
    """

    def __init__(
        self,
        api_url: str,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout_s = timeout_s
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def list_microsubs(
        self,
        wallet_address: str,
        only_data_rooms: bool = False,
        token: Optional[CancellationToken] = None,
    ) -> MicrosubList:
        """
        Fetch the microsubs owned by a wallet.

        Raises:
            ValueError: If wallet_address is malformed
            NetworkFailure: On transport errors or non-2xx responses
            RequestTimeout: If the backend does not answer in time
            FetchCancelled: If the token is cancelled before the response arrives
        """
        if not is_valid_address(wallet_address):
            raise ValueError(
                "Invalid wallet_address format. Expected 0x followed by 40 hexadecimal characters."
            )

        params = {"wallet_address": wallet_address}
        if only_data_rooms:
            params["only_data_rooms"] = "true"

        if token is not None:
            token.raise_if_cancelled()

        request = self.client.get(
            f"{self.api_url}/microsubs",
            params=params,
            timeout=self.timeout_s,
        )

        try:
            if token is not None:
                response = await token.run(request)
            else:
                response = await request
        except httpx.TimeoutException as e:
            logger.warning("microsub_fetch_timeout", wallet_address=wallet_address)
            raise RequestTimeout() from e
        except httpx.HTTPError as e:
            logger.warning("microsub_fetch_failed", wallet_address=wallet_address, error=str(e))
            raise NetworkFailure(f"Failed to connect to backend: {e}") from e

        if response.status_code >= 400:
            error = error_from_response(response)
            logger.warning(
                "microsub_fetch_rejected",
                wallet_address=wallet_address,
                status_code=response.status_code,
                error=error.message,
            )
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise NetworkFailure(
                f"Invalid microsub response: {response.status_code}",
                status_code=response.status_code,
            ) from e

        result = parse_microsub_list(data)
        logger.info(
            "microsubs_fetched",
            wallet_address=wallet_address,
            total=result.total_count,
            active=result.active_count,
        )
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "MicrosubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
