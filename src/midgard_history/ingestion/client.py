"""Upstream history API client.

Defines the contract the ingestion engines depend on (SourceClient) and the
aiohttp implementation for the Midgard v2 history endpoints. The client only
moves bytes: it returns the raw response body so the engine can classify it
(throttling notice, malformed payload, data) and raises TransportError when
no response was received at all.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

import aiohttp

from midgard_history.config import SourceSettings
from midgard_history.data.models import ResourceType
from midgard_history.exceptions import TransportError
from midgard_history.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FetchRequest:
    """Parameters of one upstream page request."""

    resource: ResourceType
    interval: str
    count: int
    from_: datetime
    to: datetime | None = None  # None = unbounded

    def params(self) -> dict[str, str]:
        """Query string parameters; ``to`` is omitted when unbounded."""
        params = {
            "interval": self.interval,
            "count": str(self.count),
            "from": str(int(self.from_.timestamp())),
        }
        if self.to is not None:
            params["to"] = str(int(self.to.timestamp()))
        return params


class SourceClient(ABC):
    """Abstract base class for the paginated history source."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying HTTP session."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP session."""
        ...

    @abstractmethod
    async def fetch_page(self, request: FetchRequest) -> str:
        """Return the raw response body for one page request.

        Raises TransportError if the request could not be completed.
        """
        ...


class MidgardClient(SourceClient):
    """Concrete Midgard v2 client using a shared aiohttp session."""

    def __init__(
        self,
        settings: SourceSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._session = session
        self._owns_session = session is None

    def endpoint(self, resource: ResourceType) -> str:
        """Full URL of a resource's history endpoint."""
        base = self._settings.base_url.rstrip("/")
        if resource is ResourceType.DEPTH:
            return f"{base}/history/depths/{self._settings.depth_pool}"
        if resource is ResourceType.SWAP:
            return f"{base}/history/swaps"
        if resource is ResourceType.EARNINGS:
            return f"{base}/history/earnings"
        return f"{base}/history/runepool"

    async def connect(self) -> None:
        if self._session is not None:
            return
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._settings.request_timeout),
            headers={"User-Agent": self._settings.user_agent},
        )
        self._owns_session = True
        logger.info("midgard_client_connected", base_url=self._settings.base_url)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            logger.info("midgard_client_closed")
        self._session = None

    async def fetch_page(self, request: FetchRequest) -> str:
        """GET one page and return its body, whatever the HTTP status.

        The upstream's throttling notice may arrive with a non-2xx status, so
        status codes are logged but classification is left to the caller.
        """
        if self._session is None:
            raise RuntimeError("Client not connected. Call connect() first.")

        url = self.endpoint(request.resource)
        try:
            async with self._session.get(url, params=request.params()) as response:
                body = await response.text()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"{request.resource.value} request to {url} failed: {e!r}"
            ) from e

        if status >= 400:
            logger.debug(
                "upstream_error_status",
                resource=request.resource.value,
                status=status,
            )
        return body
