import logging
import httpx


def probe_client(timeout: float, max_redirects: int, user_agent: str | None = None,
                 transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Client used for lightweight HEAD probes; certificates are not verified."""
    headers = {"User-Agent": user_agent} if user_agent else None
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        max_redirects=max_redirects,
        verify=False,
        headers=headers,
        transport=transport,
    )


async def head_status(client: httpx.AsyncClient, url: str) -> int | None:
    """
    HEAD request returning the final status code, or None on any transport error
    (timeouts, connection failures, too many redirects).
    """
    try:
        response = await client.head(url)
        return response.status_code
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logging.warning(f"Probe failed for {url}: {e}")
        return None


async def url_exists_async(url: str, timeout: float = 5, user_agent: str | None = None, transport=None) -> bool:
    async with probe_client(timeout, 3, user_agent, transport) as client:
        status = await head_status(client, url)
    return status is not None and status < 400
