import logging

import httpx

from beacon_server.models import NotificationJob

logger = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    pass


class HttpDelivery:
    """Hands a job to the push sender over HTTP.

    Raises ``DeliveryError`` for a non-2xx response; transport errors from
    httpx propagate unchanged.
    """

    def __init__(self, url: str, timeout: float = 30.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __call__(self, job: NotificationJob) -> None:
        response = await self.client.post(
            self.url,
            json=job.delivery_payload(),
            headers={"X-System-Job": "true", "X-Job-Id": job.id},
        )
        if not response.is_success:
            raise DeliveryError(f"Failed to send notification: {response.text}")
        logger.debug("Delivered job %s (%s)", job.id, response.status_code)

    async def aclose(self) -> None:
        await self.client.aclose()
