import asyncio
import logging
import time
from typing import AsyncIterator, Optional, Tuple

import httpx

from config.settings import settings

from .errors import BackendFailure
from .model import (
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    TransformEvent,
    TransformJobPayload,
    TransformJobResponse,
    TransformJobResult,
    TransformRequest,
)
from .utils import short_id

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "waiting": "Waiting in queue...",
    "processing": "Transforming image...",
}


class HttpTransformBackend:
    """
    TransformBackend talking to a job-queue HTTP service.

    POST /transform enqueues the job and returns a job_id; GET /result/{job_id}
    is polled until the job reports ``done`` or ``error``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.TRANSFORM_API_URL).rstrip("/")
        self.poll_interval = settings.POLL_INTERVAL if poll_interval is None else poll_interval
        self.timeout = settings.TRANSFORM_TIMEOUT if timeout is None else timeout
        self._client = client

    async def dispatch(self, request: TransformRequest, request_id: str) -> AsyncIterator[TransformEvent]:
        if self._client is not None:
            async for event in self._run(self._client, request, request_id):
                yield event
            return

        async with httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT) as client:
            async for event in self._run(client, request, request_id):
                yield event

    async def submit_job(self, client: httpx.AsyncClient, request: TransformRequest, request_id: str) -> str:
        """
        Send the job to POST /transform.
        Returns the job_id used to query /result.
        """
        payload = TransformJobPayload.from_request(request, request_id)
        r = await client.post(f"{self.base_url}/transform", json=payload.model_dump(mode="json"))

        if not r.is_success:
            logger.error("Transform service returned %s: %s", r.status_code, r.text[:500])
            raise BackendFailure(_error_detail(r), status_code=r.status_code)

        data = TransformJobResponse.model_validate(r.json())
        logger.debug("Got job_id %s for %s", data.job_id, short_id(request_id))
        return data.job_id

    async def fetch_result(self, client: httpx.AsyncClient, job_id: str) -> Optional[TransformJobResult]:
        """Returns None when the job does not exist."""
        r = await client.get(f"{self.base_url}/result/{job_id}")
        if r.status_code == 404:
            return None
        if not r.is_success:
            raise BackendFailure(_error_detail(r), status_code=r.status_code)
        return TransformJobResult.model_validate(r.json())

    async def _run(
        self, client: httpx.AsyncClient, request: TransformRequest, request_id: str
    ) -> AsyncIterator[TransformEvent]:
        try:
            job_id = await self.submit_job(client, request, request_id)
            last: Tuple[float, str] = (0.0, STATUS_MESSAGES["waiting"])
            yield ProgressEvent(percent=last[0], message=last[1])

            start = time.monotonic()
            while True:
                result = await self.fetch_result(client, job_id)
                if result is None:
                    yield ErrorEvent(message=f"Job {job_id} not found")
                    return

                if result.status == "done":
                    if not result.image_url:
                        yield ErrorEvent(message="Transform service returned no image")
                    else:
                        yield ProgressEvent(percent=100, message="Done")
                        yield ResultEvent(transformed_image_ref=result.image_url)
                    return

                if result.status == "error":
                    yield ErrorEvent(message=result.error_message or "Unknown transformation error")
                    return

                current = (
                    result.progress if result.progress is not None else last[0],
                    result.message or STATUS_MESSAGES[result.status],
                )
                if current != last:
                    last = current
                    yield ProgressEvent(percent=current[0], message=current[1])

                if time.monotonic() - start > self.timeout:
                    yield ErrorEvent(message=f"Timed out after {self.timeout:g}s waiting for job {job_id}")
                    return

                await asyncio.sleep(self.poll_interval)
        except httpx.HTTPError as exc:
            logger.warning("Transform service request failed for %s: %s", short_id(request_id), exc)
            raise BackendFailure(f"Transform service unreachable: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("error")
        if detail:
            return str(detail)
    return f"HTTP {response.status_code}"
