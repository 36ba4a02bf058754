"""
Fetching of remote media for the proxy routes and slot seeding.
"""
import asyncio
import base64
import binascii
import logging
import re
from typing import AsyncIterator, Optional

import aiohttp

from bogofit.core.config import settings
from bogofit.core.exceptions import ImageProxyError

logger = logging.getLogger(__name__)

# Some product CDNs refuse hotlinking without a browser-like request
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
}

DATA_URL_RE = re.compile(r"^data:([^;,]+)(;base64)?,(.*)$", re.DOTALL)
STREAM_CHUNK_SIZE = 64 * 1024


def is_http_url(url: str) -> bool:
    return url.startswith(("http://", "https://"))


def parse_data_url(url: str) -> tuple[str, bytes]:
    """
    Split a data: URL into (mime_type, raw bytes).

    Raises:
        ValueError: If the URL is not a valid data: URL
    """
    match = DATA_URL_RE.match(url)
    if not match:
        raise ValueError("Invalid data URL format")
    mime_type, is_base64, payload = match.groups()
    if not is_base64:
        return mime_type, payload.encode("utf-8")
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload in data URL: {e}") from e


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


async def fetch_remote_media(
    url: str,
    timeout: Optional[float] = None,
    headers: Optional[dict] = None,
) -> tuple[bytes, str]:
    """
    Download a remote file.

    Args:
        url: Absolute http(s) URL
        timeout: Total timeout in seconds, defaults to IMAGE_FETCH_TIMEOUT_SECONDS
        headers: Request headers, defaults to BROWSER_HEADERS

    Returns:
        Tuple of (content_bytes, content_type)

    Raises:
        ImageProxyError: On non-200 status, timeout or connection failure
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout or settings.IMAGE_FETCH_TIMEOUT_SECONDS)
    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url, headers=headers or BROWSER_HEADERS, allow_redirects=True) as resp:
                if resp.status != 200:
                    raise ImageProxyError(f"Download failed: {url} - HTTP {resp.status}", status_code=resp.status)
                data = await resp.read()
                content_type = resp.headers.get("Content-Type", "application/octet-stream")
    except asyncio.TimeoutError as e:
        raise ImageProxyError(f"Timed out fetching {url}", status_code=504) from e
    except aiohttp.ClientError as e:
        raise ImageProxyError(f"Failed to fetch {url}: {e}", status_code=502) from e

    logger.debug(f"[fetch_remote_media] Downloaded {len(data)} bytes ({content_type}) from {url}")
    return data, content_type


async def open_remote_stream(
    url: str,
    timeout: Optional[float] = None,
    headers: Optional[dict] = None,
    chunk_size: int = STREAM_CHUNK_SIZE,
) -> tuple[str, AsyncIterator[bytes]]:
    """
    Start downloading a remote file without buffering it.

    The status is checked before returning, so errors surface as exceptions
    rather than as a truncated body. The timeout bounds connecting and each
    read, not the whole transfer.

    Returns:
        Tuple of (content_type, async iterator over body chunks). The iterator
        owns the connection and closes it when exhausted or closed.

    Raises:
        ImageProxyError: On non-200 status, timeout or connection failure
    """
    read_timeout = timeout or settings.IMAGE_FETCH_TIMEOUT_SECONDS
    session = aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=None, sock_connect=read_timeout, sock_read=read_timeout)
    )
    try:
        resp = await session.get(url, headers=headers or BROWSER_HEADERS, allow_redirects=True)
    except asyncio.TimeoutError as e:
        await session.close()
        raise ImageProxyError(f"Timed out fetching {url}", status_code=504) from e
    except aiohttp.ClientError as e:
        await session.close()
        raise ImageProxyError(f"Failed to fetch {url}: {e}", status_code=502) from e

    if resp.status != 200:
        status = resp.status
        resp.release()
        await session.close()
        raise ImageProxyError(f"Download failed: {url} - HTTP {status}", status_code=status)

    async def body() -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.content.iter_chunked(chunk_size):
                yield chunk
        finally:
            resp.release()
            await session.close()

    return resp.headers.get("Content-Type", "application/octet-stream"), body()
