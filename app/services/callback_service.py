"""Delivery of job results to caller-supplied callback URLs."""

from typing import Any, Dict, Optional
import httpx
from app.config import settings
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


class CallbackDispatcher:
    """Posts a job result to its callback URL once.

    There is no retry and failed deliveries are not kept; a failure is only
    logged.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout or settings.callback_timeout_seconds
        self._transport = transport

    async def deliver(self, url: str, envelope: Dict[str, Any]) -> bool:
        """POST the envelope as JSON to the callback URL.

        Args:
            url: Callback URL
            envelope: JSON-ready result envelope

        Returns:
            True if the receiver answered with a 2xx status, False otherwise
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=envelope,
                    headers={"Content-Type": "application/json"},
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Callback for job {envelope.get('jobId')} rejected by {url}: HTTP {e.response.status_code}"
            )
            return False
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Callback for job {envelope.get('jobId')} to {url} failed: {e}")
            return False

        logger.info(f"Delivered callback for job {envelope.get('jobId')} to {url}")
        return True
