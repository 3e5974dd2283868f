"""
NFD API adapter.

Resolves human-readable NFD names to their on-ledger application and
owner through the public NFD REST API.
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog

from reti.config import RetiConfig, get_config

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NfdRecord:
    """Brief view of an NFD."""
    name: str
    owner: Optional[str]
    app_id: int


class ExternalLookupError(Exception):
    """Raised when the NFD API cannot be queried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NameNotFoundError(ExternalLookupError):
    """Raised when an NFD name does not exist."""
    pass


class NameOwnershipError(ExternalLookupError):
    """Raised when an NFD is not owned by the expected account."""

    def __init__(self, name: str, owner: Optional[str], expected: str):
        super().__init__(f"NFD {name} is owned by {owner}, not {expected}")
        self.name = name
        self.owner = owner
        self.expected = expected


class NfdDirectory:
    """
    NFD API client.

    Usage:
        ```python
        directory = NfdDirectory()
        record = await directory.verify_owner("validator.algo", owner_address)
        ```
    """

    def __init__(
        self,
        config: Optional[RetiConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the directory client.

        Args:
            config: Client configuration. Uses global config if not provided.
            transport: Optional httpx transport (used by tests)
        """
        self.config = config or get_config()
        self.base_url = self.config.nfd_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=self.config.request_timeout_seconds,
            transport=self._transport,
        )
        logger.debug("nfd_client_created", base_url=self.base_url)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, **params: Any) -> Any:
        if not self._client:
            await self.connect()

        try:
            response = await self._client.get(path, params=params)
        except httpx.RequestError as e:
            logger.error("nfd_request_error", path=path, error=str(e))
            raise ExternalLookupError(f"NFD request failed: {e}")

        if response.status_code == 404:
            raise NameNotFoundError(f"NFD not found: {path}", status_code=404)

        if response.status_code != 200:
            logger.error(
                "nfd_request_failed",
                path=path,
                status=response.status_code,
                error=response.text,
            )
            raise ExternalLookupError(
                f"NFD API error: {response.text}",
                status_code=response.status_code,
            )

        return response.json()

    async def resolve(self, name: str) -> NfdRecord:
        """
        Look up an NFD by name.

        Args:
            name: Full NFD name, e.g. "validator.algo"

        Returns:
            The NFD's name, owner and application id

        Raises:
            NameNotFoundError: If the name does not exist
            ExternalLookupError: If the API fails or returns no app id
        """
        data = await self._get(f"/nfd/{name}", view="brief")

        app_id = data.get("appID")
        if not app_id:
            raise ExternalLookupError(f"NFD {name} has no application id")

        record = NfdRecord(name=data.get("name", name), owner=data.get("owner"), app_id=int(app_id))
        logger.debug("nfd_resolved", name=record.name, app_id=record.app_id)
        return record

    async def verify_owner(self, name: str, address: str) -> NfdRecord:
        """
        Resolve an NFD and check it is owned by `address`.

        Raises:
            NameOwnershipError: If the NFD has a different owner
        """
        record = await self.resolve(name)
        if record.owner != address:
            logger.warning("nfd_owner_mismatch", name=name, owner=record.owner, expected=address)
            raise NameOwnershipError(name, record.owner, address)
        return record
