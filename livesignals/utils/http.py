"""
Shared aiohttp session factory.
"""

import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import aiohttp
import certifi

from .. import __version__

USER_AGENT = f"LiveSignals/{__version__} (+https://github.com/livesignals/livesignals)"


@asynccontextmanager
async def create_session(
    timeout: int = 30,
    max_connections: int = 20,
    headers: Optional[Dict[str, str]] = None,
) -> AsyncIterator[aiohttp.ClientSession]:
    """Yield an aiohttp session with certifi TLS roots and a request timeout."""
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(
        ssl=ssl_context,
        limit=max_connections,
        limit_per_host=5,
        enable_cleanup_closed=True,
    )
    session_headers = {
        "User-Agent": USER_AGENT,
        "Accept-Encoding": "gzip, deflate",
    }
    session_headers.update(headers or {})

    async with aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers=session_headers,
    ) as session:
        yield session
