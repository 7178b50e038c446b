"""Sources of transfers waiting for settlement."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from veilbridge.errors import StoreUnavailableError, TransientError
from veilbridge.models import Transfer, TransferStatus
from veilbridge.store import RecordStore

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


class TransferSource(ABC):
    """Where the settlement processor finds candidate transfers."""

    @abstractmethod
    async def get_stored_transfers(self) -> list[Transfer]:
        """
        Transfers currently in STORED status.

        Raises:
            TransientError: if the backing store or API cannot be reached
        """
        pass

    async def close(self) -> None:
        pass


class StoreTransferSource(TransferSource):
    """Reads candidates straight from the record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def get_stored_transfers(self) -> list[Transfer]:
        try:
            return await self.store.find_transfers(status=TransferStatus.STORED)
        except StoreUnavailableError as e:
            raise TransientError(f"Record store unavailable: {e}") from e


class IndexerApiTransferSource(TransferSource):
    """
    Reads candidates from the indexer's read API.

    Lets the processor run on a different host than the indexer database.
    """

    def __init__(self, api_url: str):
        self.api_url = api_url.rstrip("/")
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers={"Content-Type": "application/json"},
                timeout=REQUEST_TIMEOUT,
            )
        return self._client

    async def get_stored_transfers(self) -> list[Transfer]:
        client = await self._get_client()
        try:
            response = await client.get("/v1/transfers", params={"status": TransferStatus.STORED.value})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransientError(f"Transfer query failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise TransientError(f"Transfer query failed: {e}") from e

        return [Transfer.model_validate(item) for item in response.json()]

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
