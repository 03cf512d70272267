"""Best-effort outbound webhook delivery."""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "Newscast/1.0 (+webhooks)"


async def deliver_webhook(
    url: str,
    payload: dict[str, Any],
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> bool:
    """POST a JSON payload to a webhook URL.

    Failures are logged and never raised: a webhook must not fail the job
    that triggered it.

    Args:
        url: Receiver URL
        payload: JSON body
        client: Shared client (a short-lived one is created if omitted)
        timeout: Request timeout in seconds

    Returns:
        True if the receiver answered with a 2xx status
    """
    try:
        if client is not None:
            response = await client.post(url, json=payload, timeout=timeout, headers={"User-Agent": USER_AGENT})
        else:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.post(url, json=payload, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Webhook delivery to {url} failed: {e}")
        return False

    logger.info(f"Webhook delivered to {url} ({response.status_code})")
    return True
