from __future__ import annotations

from urllib.parse import urljoin

import httpx
import structlog


logger = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; EULoginTracker/1.0)"
DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml",
}
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_REDIRECTS = 5

# Anything the transport can raise for a bad target (e.g. a redirect to port 99999
# surfaces as OverflowError from the socket layer).
_TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL, ValueError, OSError, OverflowError)


class FetchError(Exception):
    """Transport, timeout, redirect-limit or non-2xx failure. str(exc) is the recorded message."""


async def fetch_page(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    headers: dict[str, str] | None = None,
) -> str:
    request_headers = dict(DEFAULT_HEADERS)
    if headers:
        request_headers.update(headers)

    current_url = url
    redirects = 0
    while True:
        try:
            resp = await client.get(
                current_url,
                headers=request_headers,
                follow_redirects=False,
                timeout=timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise FetchError("Timeout") from e
        except _TRANSPORT_ERRORS as e:
            raise FetchError(f"{type(e).__name__}: {e}") from e

        location = resp.headers.get("location")
        if 300 <= resp.status_code < 400 and location:
            redirects += 1
            if redirects > max_redirects:
                raise FetchError("Too many redirects")
            try:
                next_url = urljoin(str(resp.url), location)
            except ValueError as e:
                raise FetchError(f"{type(e).__name__}: {e}") from e
            logger.debug("Following redirect", status_code=resp.status_code, location=next_url, hop=redirects)
            current_url = next_url
            continue

        if not (200 <= resp.status_code < 300):
            raise FetchError(f"HTTP {resp.status_code}")

        return resp.text or ""
