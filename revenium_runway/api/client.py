"""Async HTTP client for the Runway task API, including the completion poller.

WHY: Runway video generation is asynchronous: a POST creates a task, and
the result only exists once GET /v1/tasks/{id} reports a terminal status.
This module wraps both calls and the polling state machine behind one
client class, translating transport, HTTP, and JSON failures into the
package's typed errors.

HOW: Uses httpx.AsyncClient with bearer auth and the X-Runway-Version
header. The HTTP client is created on first use (or on entering the async
context manager) and closed by aclose(). wait_for_completion() drives
repeated status lookups with deterministic exponential backoff until a
terminal status, a timeout, attempt exhaustion, or caller cancellation.

RULES:
- Poll loop order per iteration: cancellation, timeout, attempt budget,
  then exactly one status lookup
- Network and provider errors during polling are logged and retried; they
  still consume an attempt and wall-clock time
- Authentication errors during polling are not retried
- Interval grows x1.5 per wait, capped at policy.max_interval, no jitter
- Every TaskError from the poller carries reason and last_status
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from revenium_runway.api.models import (
    DEFAULT_POLLING_POLICY,
    ImageToVideoRequest,
    PollingPolicy,
    TaskResponse,
    TaskStatus,
    TaskStatusResponse,
    VideoToVideoRequest,
    VideoUpscaleRequest,
)
from revenium_runway.config import Config
from revenium_runway.errors import (
    POLL_CANCELLED,
    POLL_MAX_ATTEMPTS,
    POLL_TIMEOUT,
    TASK_CANCELED,
    TASK_FAILED,
    AuthenticationError,
    NetworkError,
    ProviderError,
    TaskError,
)
from revenium_runway.version import get_middleware_source

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_POLL_BACKOFF_FACTOR = 1.5
_REQUEST_TIMEOUT_S = 30.0

IMAGE_TO_VIDEO_PATH = "/v1/image_to_video"
VIDEO_TO_VIDEO_PATH = "/v1/video_to_video"
VIDEO_UPSCALE_PATH = "/v1/video_upscale"
TASK_STATUS_PATH = "/v1/tasks/{}"


def _monotonic() -> float:
    return time.monotonic()


async def _sleep(seconds: float, cancel_event: asyncio.Event | None = None) -> None:
    """Sleep between polls, waking early if the cancel event gets set."""
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


def _provider_error(resp: httpx.Response) -> ProviderError:
    """Build a ProviderError from a non-2xx response.

    Runway error bodies look like {"error": {"type", "message", "code"}}.
    When the body does not match, the raw text is used instead.
    """
    try:
        body = resp.json()
    except ValueError:
        body = None

    detail = body.get("error") if isinstance(body, dict) else None
    if isinstance(detail, dict) and detail.get("message"):
        err = ProviderError(
            f"Runway API error ({resp.status_code}): {detail['message']}",
            status_code=resp.status_code,
        )
        return err.with_details("code", detail.get("code", "")).with_details(
            "type", detail.get("type", "")
        )

    return ProviderError(
        f"Runway API returned status {resp.status_code}: {resp.text}",
        status_code=resp.status_code,
    )


class RunwayClient:
    """Async client for Runway's task creation and status endpoints.

    WHY: The orchestrator needs three creation calls, a status lookup, and
    a bounded wait loop, all with identical auth and error translation.

    HOW: Wraps httpx.AsyncClient. The optional ``transport`` argument is
    passed straight to httpx so tests can plug in httpx.MockTransport.

    RULES:
    - Use as ``async with RunwayClient(config) as client:`` or call
      aclose() when done
    - All non-2xx responses raise; 401/403 raise AuthenticationError
    - Responses that are not valid JSON raise ProviderError
    """

    def __init__(
        self,
        config: Config,
        timeout: float = _REQUEST_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> RunwayClient:
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, creating it on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.runway_base_url,
                headers={
                    "Authorization": f"Bearer {self._config.runway_api_key}",
                    "X-Runway-Version": self._config.runway_version,
                    "Content-Type": "application/json",
                    "User-Agent": get_middleware_source(),
                },
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = self._ensure_client()
        try:
            resp = await client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            raise NetworkError("HTTP request failed", exc) from exc

        if resp.status_code in (401, 403):
            raise AuthenticationError(
                f"Runway rejected credentials ({resp.status_code}): {resp.text}",
                status_code=resp.status_code,
            )
        if not 200 <= resp.status_code < 300:
            raise _provider_error(resp)

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("failed to decode response", exc) from exc
        if not isinstance(data, dict):
            raise ProviderError(f"unexpected response shape: {data!r}")
        return data

    # ------------------------------------------------------------------
    # Task creation
    # ------------------------------------------------------------------

    async def _create_task(self, path: str, body: dict[str, Any]) -> TaskResponse:
        data = await self._request("POST", path, body)
        try:
            task = TaskResponse.from_dict(data)
        except KeyError as exc:
            raise ProviderError("task creation response missing field", exc) from exc
        logger.debug("Created task %s with status %s", task.id, task.status)
        return task

    async def create_image_to_video(self, req: ImageToVideoRequest) -> TaskResponse:
        return await self._create_task(IMAGE_TO_VIDEO_PATH, req.to_dict())

    async def create_video_to_video(self, req: VideoToVideoRequest) -> TaskResponse:
        return await self._create_task(VIDEO_TO_VIDEO_PATH, req.to_dict())

    async def create_video_upscale(self, req: VideoUpscaleRequest) -> TaskResponse:
        return await self._create_task(VIDEO_UPSCALE_PATH, req.to_dict())

    # ------------------------------------------------------------------
    # Status lookup
    # ------------------------------------------------------------------

    async def get_task_status(self, task_id: str) -> TaskStatusResponse:
        data = await self._request("GET", TASK_STATUS_PATH.format(task_id))
        try:
            return TaskStatusResponse.from_dict(data)
        except KeyError as exc:
            raise ProviderError("task status response missing field", exc) from exc

    # ------------------------------------------------------------------
    # Completion poller
    # ------------------------------------------------------------------

    async def wait_for_completion(
        self,
        task_id: str,
        policy: PollingPolicy | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> TaskStatusResponse:
        """Poll a task until it reaches a terminal status.

        WHY: Runway tasks run for seconds to many minutes. The caller needs
        a single awaitable that resolves once the outcome is known, with
        hard ceilings so a stuck task cannot block it forever.

        HOW: Each iteration checks the cancel event, the elapsed time, and
        the attempt count, in that order, before performing one lookup.
        Between iterations it sleeps for the current interval and then
        multiplies the interval by 1.5, capped at policy.max_interval.

        RULES:
        - Returns the status response when the task SUCCEEDED
        - Raises TaskError(reason=TASK_FAILED / TASK_CANCELED) on the
          other terminal statuses, with last_status set to that response
        - Raises TaskError(reason=POLL_CANCELLED / POLL_TIMEOUT /
          POLL_MAX_ATTEMPTS) when a ceiling or the cancel event ends the
          loop; last_status is the last successful lookup or None
        - AuthenticationError propagates immediately

        Args:
            task_id: ID returned by one of the create_* calls.
            policy: Polling bounds; defaults to DEFAULT_POLLING_POLICY.
            cancel_event: Optional event; once set, polling stops before
                the next lookup.

        Returns:
            The terminal TaskStatusResponse with status SUCCEEDED.
        """
        policy = policy or DEFAULT_POLLING_POLICY
        interval = policy.initial_interval
        start_time = _monotonic()
        attempts = 0
        last_status: TaskStatusResponse | None = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise TaskError(
                    f"task {task_id} polling cancelled by caller",
                    reason=POLL_CANCELLED,
                    last_status=last_status,
                )

            elapsed = _monotonic() - start_time
            if elapsed > policy.timeout:
                raise TaskError(
                    f"task polling timeout after {policy.timeout:.0f}s",
                    reason=POLL_TIMEOUT,
                    last_status=last_status,
                )

            if attempts >= policy.max_attempts:
                raise TaskError(
                    f"max polling attempts ({policy.max_attempts}) exceeded",
                    reason=POLL_MAX_ATTEMPTS,
                    last_status=last_status,
                )

            attempts += 1
            try:
                status = await self.get_task_status(task_id)
            except (NetworkError, ProviderError) as exc:
                logger.warning(
                    "Failed to get task status (attempt %d): %s", attempts, exc
                )
            else:
                last_status = status
                logger.debug(
                    "Task %s status: %s (attempt %d, elapsed %.1fs)",
                    task_id, status.status, attempts, elapsed,
                )

                if status.status == TaskStatus.SUCCEEDED:
                    logger.info("Task %s completed successfully", task_id)
                    return status

                if status.status == TaskStatus.FAILED:
                    raise TaskError(
                        f"task failed: {status.failure_text}",
                        reason=TASK_FAILED,
                        last_status=status,
                    )

                if status.status == TaskStatus.CANCELED:
                    raise TaskError(
                        f"task was canceled: {status.failure_text}",
                        reason=TASK_CANCELED,
                        last_status=status,
                    )

            await _sleep(interval, cancel_event)
            interval = min(interval * _POLL_BACKOFF_FACTOR, policy.max_interval)
