"""
HTTP client for Room Recorder.
Wraps one aiohttp session with the browser-like headers the site expects.
"""

import asyncio
from typing import Optional

import aiohttp

from .config import NetworkConfig
from .errors import (
    AccessDenied,
    AgeVerificationRequired,
    CloudflareBlocked,
    TransportError,
)
from .logger import get_logger


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

CLOUDFLARE_MARKER = "<title>Just a moment...</title>"
AGE_GATE_MARKER = "Verify your age"


class SiteClient:
    """
    HTTP capability used by discovery, playlist polling and segment download.

    Features:
    - One shared connection pool for all rooms
    - Cookie string passed through as-is (cf_clearance, sessionid)
    - Status and challenge pages classified into TransportError subclasses
    """

    def __init__(self, config: NetworkConfig):
        """
        Initialize client.

        Args:
            config: Network settings (domain, cookies, user agent, timeouts).
        """
        self.domain = config.domain_with_trailing_slash()
        self.user_agent = config.user_agent or DEFAULT_USER_AGENT
        self.cookies = config.cookies
        self._timeout = aiohttp.ClientTimeout(
            total=config.request_timeout_seconds,
            connect=config.connect_timeout_seconds
        )
        self._session: Optional[aiohttp.ClientSession] = None
        self._logger = get_logger('http')

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def disconnect(self) -> None:
        """Close session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> 'SiteClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def _headers(self) -> dict:
        """Browser-like headers; X-Requested-With skips the age gate."""
        headers = {
            'User-Agent': self.user_agent,
            'Accept': (
                'text/html,application/xhtml+xml,application/xml;q=0.9,'
                'image/avif,image/webp,image/apng,*/*;q=0.8'
            ),
            'Accept-Language': 'en-US,en;q=0.9',
            'Accept-Encoding': 'gzip, deflate',
            'Sec-Ch-Ua': '"Chromium";v="120", "Not(A:Brand";v="24"',
            'Sec-Ch-Ua-Mobile': '?0',
            'Sec-Ch-Ua-Platform': '"Windows"',
            'Sec-Fetch-Dest': 'document',
            'Sec-Fetch-Mode': 'navigate',
            'Sec-Fetch-Site': 'none',
            'Sec-Fetch-User': '?1',
            'Upgrade-Insecure-Requests': '1',
            'X-Requested-With': 'XMLHttpRequest',
        }
        if self.cookies:
            headers['Cookie'] = self.cookies
        return headers

    async def _request(self, url: str, as_text: bool):
        if self._session is None:
            await self.connect()

        try:
            async with self._session.get(url, headers=self._headers()) as resp:
                self._logger.debug(f"GET {url} -> {resp.status}")

                if resp.status == 403:
                    raise AccessDenied(url)
                if resp.status >= 400:
                    raise TransportError(url, status=resp.status, details=resp.reason)

                if as_text:
                    return await resp.text(errors='replace')
                return await resp.read()

        except aiohttp.ClientError as e:
            raise TransportError(url, details=str(e) or type(e).__name__) from e
        except asyncio.TimeoutError as e:
            raise TransportError(url, details="timeout") from e

    async def get_text(self, url: str) -> str:
        """
        Fetch a text document (room page or playlist).

        Raises:
            TransportError: On connection failure or error status.
            CloudflareBlocked: If a challenge page came back instead.
            AgeVerificationRequired: If the age gate came back instead.
        """
        text = await self._request(url, as_text=True)

        if CLOUDFLARE_MARKER in text:
            raise CloudflareBlocked(url)
        if AGE_GATE_MARKER in text:
            raise AgeVerificationRequired(url)

        return text

    async def get_bytes(self, url: str) -> bytes:
        """Fetch a binary body (media segment)."""
        return await self._request(url, as_text=False)

    async def get_room_page(self, room: str) -> str:
        """Fetch the HTML page of a room."""
        return await self.get_text(self.room_url(room))

    def room_url(self, room: str) -> str:
        return f"{self.domain}{room}/"
