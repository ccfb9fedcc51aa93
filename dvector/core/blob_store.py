"""
Content-addressed blob storage clients.
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from typing import Dict, Optional, Union

import httpx

from .errors import BlobNotFound, StorageUnavailable


def _to_bytes(data: Union[bytes, str]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


class IBlobStore(ABC):
    """Abstract interface for blob storage."""

    @abstractmethod
    async def put(self, data: Union[bytes, str]) -> str:
        """Store a payload and return its blob id."""
        pass

    @abstractmethod
    async def get(self, blob_id: str) -> bytes:
        """Fetch a payload. Raises BlobNotFound for unknown ids."""
        pass

    @abstractmethod
    async def exists(self, blob_id: str) -> bool:
        pass

    async def get_text(self, blob_id: str) -> str:
        data = await self.get(blob_id)
        return data.decode("utf-8")


class InMemoryBlobStore(IBlobStore):
    """Process-local store addressed by the sha256 of the payload."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def put(self, data: Union[bytes, str]) -> str:
        payload = _to_bytes(data)
        blob_id = hashlib.sha256(payload).hexdigest()
        async with self._lock:
            self._blobs[blob_id] = payload
        return blob_id

    async def get(self, blob_id: str) -> bytes:
        try:
            return self._blobs[blob_id]
        except KeyError:
            raise BlobNotFound(blob_id) from None

    async def exists(self, blob_id: str) -> bool:
        return blob_id in self._blobs

    def __len__(self):
        return len(self._blobs)


class WalrusBlobStore(IBlobStore):
    """
    HTTP client for a Walrus publisher (writes) and aggregator (reads).

    Transport failures and 5xx responses surface as StorageUnavailable; a 404 on
    read surfaces as BlobNotFound.
    """

    def __init__(self, publisher_url: str, aggregator_url: str, epochs: int = 5,
                 timeout_sec: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.publisher_url = publisher_url.rstrip("/")
        self.aggregator_url = aggregator_url.rstrip("/")
        self.epochs = epochs
        self.timeout_sec = timeout_sec
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_sec), follow_redirects=True)
        return self._client

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def put(self, data: Union[bytes, str]) -> str:
        url = f"{self.publisher_url}/v1/blobs"
        try:
            response = await self.client.put(url, params={"epochs": self.epochs}, content=_to_bytes(data))
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise StorageUnavailable(f"Walrus upload failed: {e}") from e
        except ValueError as e:
            raise StorageUnavailable(f"Walrus upload returned a non-JSON response: {e}") from e

        return self._extract_blob_id(body)

    @staticmethod
    def _extract_blob_id(body: dict) -> str:
        if "newlyCreated" in body:
            return body["newlyCreated"]["blobObject"]["blobId"]
        if "alreadyCertified" in body:
            return body["alreadyCertified"]["blobId"]
        raise StorageUnavailable(f"Unexpected Walrus upload response: {list(body)}")

    async def get(self, blob_id: str) -> bytes:
        url = f"{self.aggregator_url}/v1/blobs/{blob_id}"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise StorageUnavailable(f"Walrus read failed for {blob_id}: {e}") from e

        if response.status_code == 404:
            raise BlobNotFound(blob_id)
        if response.is_error:
            raise StorageUnavailable(f"Walrus read failed for {blob_id}: HTTP {response.status_code}")
        return response.content

    async def exists(self, blob_id: str) -> bool:
        url = f"{self.aggregator_url}/v1/blobs/{blob_id}"
        try:
            response = await self.client.head(url)
        except httpx.HTTPError as e:
            raise StorageUnavailable(f"Walrus lookup failed for {blob_id}: {e}") from e

        if response.status_code == 404:
            return False
        if response.is_error:
            raise StorageUnavailable(f"Walrus lookup failed for {blob_id}: HTTP {response.status_code}")
        return True
