from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .config import GatewayConfig
from .exceptions import (
    GatewayAuthError,
    GatewayError,
    GatewayNotFoundError,
    GatewayRateLimitError,
)
from .models import CommitmentRecord
from .paper import PaperGateway

logger = logging.getLogger(__name__)


class CrossbarClient:
    """Fetches encoded randomness proofs for open commitments.

    In paper mode proofs come from the paper gateway's oracles instead of
    the Crossbar HTTP service.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        paper_gateway: PaperGateway | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or GatewayConfig()
        self._paper_gateway = paper_gateway
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if self.config.paper_mode and paper_gateway is None:
            raise GatewayError("paper_mode requires a PaperGateway to reveal proofs")

        logger.info(
            f"Initialized CrossbarClient (paper_mode={self.config.paper_mode}, "
            f"url={self.config.crossbar_url})"
        )

    async def __aenter__(self) -> CrossbarClient:
        if not self._paper_enabled():
            limits = httpx.Limits(
                max_connections=self.config.max_connections,
                max_keepalive_connections=self.config.max_keepalive_connections,
            )
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                limits=limits,
                transport=self._transport,
            )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed CrossbarClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("CrossbarClient must be used as async context manager")
        return self._client

    def _paper_enabled(self) -> bool:
        return self.config.paper_mode and self._paper_gateway is not None

    async def resolve_randomness(self, record: CommitmentRecord) -> str:
        """Return the encoded proof for a commitment."""
        if self._paper_enabled():
            return self._paper_gateway.reveal(record.commitment_id)

        payload = {
            "chainId": self.config.chain_id,
            "randomnessId": record.commitment_id,
            "timestamp": record.roll_timestamp,
            "minStalenessSeconds": record.min_settlement_delay,
            "oracle": record.oracle,
        }
        data = await self._request("POST", self.config.resolve_url, json_data=payload)

        encoded = data.get("encoded")
        if not encoded:
            raise GatewayError(
                f"Crossbar response for {record.commitment_id} has no 'encoded' field"
            )
        return encoded

    async def _request(
        self,
        method: str,
        url: str,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        retry_count = 0
        last_error: Exception | None = None

        while retry_count < self.config.max_retries:
            try:
                response = await self.client.request(method=method, url=url, json=json_data)

                if response.status_code == 401:
                    raise GatewayAuthError("Authentication failed", status_code=401)
                elif response.status_code == 404:
                    raise GatewayNotFoundError(
                        f"Resource not found: {url}", status_code=404
                    )
                elif response.status_code == 429:
                    wait_time = 2 ** retry_count
                    logger.warning(f"Rate limited, waiting {wait_time}s...")
                    last_error = GatewayRateLimitError("Rate limited", status_code=429)
                    retry_count += 1
                    if retry_count < self.config.max_retries:
                        await asyncio.sleep(wait_time)
                    continue
                elif response.status_code >= 500:
                    wait_time = 2 ** retry_count
                    logger.warning(
                        f"Server error {response.status_code}, "
                        f"retrying in {wait_time}s..."
                    )
                    last_error = GatewayError(
                        f"Server error {response.status_code}",
                        status_code=response.status_code,
                    )
                    retry_count += 1
                    if retry_count < self.config.max_retries:
                        await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                retry_count += 1
                if retry_count < self.config.max_retries:
                    logger.warning(f"Timeout, retrying ({retry_count})...")
                    await asyncio.sleep(2)

            except httpx.HTTPStatusError as e:
                raise GatewayError(
                    f"Crossbar request failed: {e}", status_code=e.response.status_code
                ) from e

            except httpx.RequestError as e:
                last_error = e
                logger.error(f"Network error: {e}")
                break

        if isinstance(last_error, GatewayRateLimitError):
            raise GatewayRateLimitError(
                f"Request failed after {retry_count} retries: rate limited",
                status_code=429,
            )
        raise GatewayError(f"Request failed after {retry_count} retries: {last_error}")
