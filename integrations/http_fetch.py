# integrations/http_fetch.py
"""
HTTP fetching for scraping adapters.

Browser-like headers, redirects followed, no exceptions: every helper
returns None on network errors, non-2xx responses and trivially small bodies.
Optionally retries once through a reader proxy that gets past basic
bot-blocking.
"""
import logging
from typing import Dict, Optional

import httpx

import config

logger = logging.getLogger(__name__)

MIN_HTML_LENGTH = 200


def default_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {
        "User-Agent": config.USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": config.ACCEPT_LANGUAGE,
    }
    if extra:
        headers.update(extra)
    return headers


def build_client(timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared client for one assembly run; tests pass an httpx.MockTransport."""
    return httpx.AsyncClient(
        timeout=timeout or config.HTTP_TIMEOUT,
        follow_redirects=True,
        headers=default_headers(),
        transport=transport,
    )


def to_reader_proxy(url: str) -> str:
    base = config.READER_PROXY_URL.rstrip("/") + "/"
    if url.startswith(("http://", "https://")):
        return f"{base}{url}"
    return f"{base}http://{url}"


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, str]] = None
) -> Optional[str]:
    """GET a URL and return its body, or None on any failure"""
    try:
        response = await client.get(url, headers=headers, params=params)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug(f"[Fetch] {type(e).__name__} for {url}: {e}")
        return None

    if response.status_code >= 400:
        logger.debug(f"[Fetch] HTTP {response.status_code} for {url}")
        return None
    return response.text


async def fetch_html(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    use_proxy: Optional[bool] = None
) -> Optional[str]:
    """
    Fetch a page's HTML.

    Falls back to the reader proxy when the direct fetch fails or returns
    less than MIN_HTML_LENGTH characters.
    """
    direct = await fetch_text(client, url, headers=headers)
    if direct and len(direct) > MIN_HTML_LENGTH:
        return direct

    if use_proxy is None:
        use_proxy = config.USE_READER_PROXY
    if not use_proxy:
        return None

    logger.debug(f"[Fetch] Retrying via reader proxy: {url}")
    proxied = await fetch_text(client, to_reader_proxy(url), headers=headers)
    if proxied and len(proxied) > MIN_HTML_LENGTH:
        return proxied
    return None


async def fetch_bytes(client: httpx.AsyncClient, url: str, max_bytes: int = 5_000_000) -> Optional[bytes]:
    """Download binary content (images). Reading stops as soon as the body passes max_bytes."""
    try:
        async with client.stream("GET", url, headers={"Accept": "image/*,*/*;q=0.8"}) as response:
            if response.status_code >= 400:
                return None
            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > max_bytes:
                logger.debug(f"[Fetch] Body too large for {url}: {declared} bytes declared")
                return None
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > max_bytes:
                    logger.debug(f"[Fetch] Body too large for {url}: over {max_bytes} bytes")
                    return None
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug(f"[Fetch] {type(e).__name__} for {url}: {e}")
        return None
    return bytes(body) or None
