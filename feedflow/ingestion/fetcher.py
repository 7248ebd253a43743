"""
HTTP Fetcher
============

Network fetch port used by the feed normalizer and the content extractor,
with an aiohttp implementation. Transport failures surface as NetworkError;
HTTP status handling is left to the caller.
"""

import asyncio
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import aiohttp
import certifi

from ..config.settings import get_settings
from ..utils.exceptions import NetworkError, ErrorCode
from ..utils.logging import get_logger_for_component


@dataclass
class FetchResponse:
    """Raw response of a GET request."""

    url: str
    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    @property
    def content_type(self) -> Optional[str]:
        return self.header("Content-Type")


class FetchPort(ABC):
    """Anything that can GET a URL and return bytes plus headers."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> FetchResponse:
        """Fetch a URL.

        Raises:
            NetworkError: On connection, DNS or timeout failures
        """


class HttpFetcher(FetchPort):
    """aiohttp-backed fetch port.

    Used as an async context manager it keeps one session for all requests;
    otherwise every fetch opens and closes its own session.
    """

    def __init__(self, timeout: Optional[float] = None, max_connections: Optional[int] = None):
        settings = get_settings()
        self.timeout = timeout or settings.fetch.request_timeout
        self.max_connections = max_connections or settings.fetch.max_connections
        self.logger = get_logger_for_component("fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session: Optional[aiohttp.ClientSession] = None

    def _create_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_connections,
            enable_cleanup_closed=True,
        )
        return aiohttp.ClientSession(connector=connector)

    async def __aenter__(self) -> "HttpFetcher":
        if self._session is None:
            self._session = self._create_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> FetchResponse:
        if self._session is not None:
            return await self._get(self._session, url, headers, timeout)

        async with self._create_session() as session:
            return await self._get(session, url, headers, timeout)

    async def _get(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: Optional[Mapping[str, str]],
        timeout: Optional[float],
    ) -> FetchResponse:
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)
        self.logger.debug(f"GET {url}")

        try:
            async with session.get(
                url, headers=dict(headers or {}), timeout=client_timeout
            ) as response:
                body = await response.read()
                return FetchResponse(
                    url=str(response.url),
                    status=response.status,
                    body=body,
                    headers={key: value for key, value in response.headers.items()},
                )

        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request timed out after {client_timeout.total}s",
                url=url,
                error_code=ErrorCode.NETWORK_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request failed: {e}", url=url) from e
        except ValueError as e:
            # yarl rejects malformed URLs before any I/O
            raise NetworkError(f"Invalid URL: {e}", url=url) from e
