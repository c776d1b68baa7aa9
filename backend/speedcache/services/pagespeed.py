import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from speedcache.config import settings
from speedcache.core.exceptions import TransportError
from speedcache.core.metrics import pagespeed_request_duration_seconds

logger = logging.getLogger(__name__)

DEVICE_MOBILE = "MOBILE"
DEVICE_DESKTOP = "DESKTOP"

PAGESPEED_CATEGORIES = ("ACCESSIBILITY", "BEST_PRACTICES", "PERFORMANCE", "SEO")


@dataclass
class AnalysisResult:
    device: str
    payload: Any = None
    error: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_query_params(url: str, device: str, api_key: str) -> list[tuple[str, str]]:
    """Query parameters for one runPagespeed call (``category`` repeats)."""
    params = [("url", url)]
    params.extend(("category", category) for category in PAGESPEED_CATEGORIES)
    params.append(("key", api_key))
    params.append(("strategy", device))
    return params


async def fetch_analysis(url: str, device: str, api_key: str) -> AnalysisResult:
    """Run a single PageSpeed Insights analysis.

    Non-2xx answers come back as an error result carrying the response body.
    Network failures raise ``TransportError``. Nothing is retried here.
    """
    params = build_query_params(url, device, api_key)
    started = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=settings.PAGESPEED_TIMEOUT_SECONDS) as client:
            response = await client.get(settings.PAGESPEED_API_BASE_URL, params=params)
    except httpx.TransportError as e:
        logger.warning(f"PageSpeed {device} request for {url} failed: {e!r}")
        raise TransportError(f"{type(e).__name__}: {e}", device=device) from e
    finally:
        pagespeed_request_duration_seconds.labels(device=device).observe(
            time.perf_counter() - started
        )

    if not response.is_success:
        logger.warning(
            f"PageSpeed API error ({response.status_code}) for {url} [{device}]: "
            f"{response.text[:200]}"
        )
        return AnalysisResult(
            device=device, error=response.text, status_code=response.status_code
        )

    return AnalysisResult(device=device, payload=response.json(), status_code=response.status_code)
