"""Async client for the Revenium metering API.

WHY: Usage records must reach the accounting endpoint even when it is
briefly unavailable, but a bad record must not be retried forever, and
every dispatch must share one connection pool instead of opening a new
TCP/TLS session per call.

HOW: MeteringClient owns one long-lived httpx.AsyncClient configured with
bounded keep-alive limits. send_video_metering() builds and validates the
record, then send_with_retry() POSTs it up to MAX_ATTEMPTS times. Retry,
stop and the doubling backoff (0.1s, 0.2s) are a tenacity policy on
_post_record(). Each attempt's failure is classified:
  - 2xx                  -> success
  - 4xx                  -> ValidationError, stop immediately
  - 5xx                  -> MeteringError, retry
  - transport failure    -> NetworkError, retry
Exhausted retries raise MeteringError wrapping the last failure. A payload
that cannot be JSON-encoded raises MeteringError without any attempt.

RULES:
- Endpoint: POST {revenium_base_url}/meter/v2/ai/video
- Auth via the x-api-key header (not bearer auth)
- No idempotency key is sent; a retry resends the identical payload
- Backoff sleeps are not cancellable; they are bounded by MAX_ATTEMPTS
- The full payload is only logged at DEBUG
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from revenium_runway.config import Config
from revenium_runway.errors import (
    ConfigurationError,
    MeteringError,
    NetworkError,
    ValidationError,
)
from revenium_runway.metering.payload import (
    UsageMetadata,
    build_usage_record,
    validate_usage_record,
)
from revenium_runway.results import GenerationResult
from revenium_runway.version import get_middleware_source

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

METERING_PATH = "/meter/v2/ai/video"

MAX_ATTEMPTS = 3
INITIAL_BACKOFF_S = 0.1

_REQUEST_TIMEOUT_S = 10.0
_POOL_LIMITS = httpx.Limits(
    max_connections=100,
    max_keepalive_connections=10,
    keepalive_expiry=90.0,
)


class MeteringClient:
    """Delivers usage records to Revenium with bounded retries.

    WHY: Dispatch units run concurrently and independently. They share one
    connection pool and need one place that decides what is worth retrying.

    HOW: The httpx.AsyncClient is created lazily on the first send and
    reused by every later send until aclose(). ``transport`` is passed to
    httpx for tests.

    RULES:
    - send_video_metering() raises on failure; callers decide how to report
    - A missing API key raises ConfigurationError before any HTTP call
    - attempts is incremented once per HTTP attempt (for observability)
    """

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.attempts = 0

    @property
    def endpoint(self) -> str:
        return self._config.revenium_base_url + METERING_PATH

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(_REQUEST_TIMEOUT_S),
                limits=_POOL_LIMITS,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _defaults(self) -> dict[str, Any]:
        return {
            "organizationId": self._config.revenium_organization_id,
            "productId": self._config.revenium_product_id,
        }

    async def send_video_metering(
        self,
        result: GenerationResult,
        metadata: UsageMetadata | None = None,
    ) -> None:
        """Build, validate, and deliver the usage record for one result.

        Raises:
            ValidationError: The record failed schema validation or the
                endpoint answered 4xx.
            ConfigurationError: No metering API key is configured.
            MeteringError: All attempts failed with retryable errors.
        """
        record = build_usage_record(result, metadata, defaults=self._defaults())
        validate_usage_record(record)
        await self.send_with_retry(record)

    async def send_with_retry(self, payload: dict[str, Any]) -> None:
        """POST one usage record, retrying transient failures.

        The payload is encoded once, so every attempt sends identical bytes.
        """
        if not self._config.revenium_api_key:
            raise ConfigurationError("Revenium API key not configured")

        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise MeteringError("failed to marshal metering payload", exc) from exc

        try:
            await self._post_record(body, payload.get("transactionId"))
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            raise MeteringError("metering failed after retries", last_error) from last_error

    @retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=INITIAL_BACKOFF_S),
        retry=retry_if_exception_type((NetworkError, MeteringError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    async def _post_record(self, body: str, transaction_id: str | None) -> None:
        logger.debug("Sending video metering to %s: %s", self.endpoint, body)

        client = self._ensure_client()
        self.attempts += 1
        try:
            resp = await client.post(
                self.endpoint,
                content=body.encode("utf-8"),
                headers={
                    "Content-Type": "application/json; charset=utf-8",
                    "x-api-key": self._config.revenium_api_key,
                    "User-Agent": get_middleware_source(),
                },
            )
        except httpx.HTTPError as exc:
            raise NetworkError("metering request failed", exc) from exc

        if 200 <= resp.status_code < 300:
            logger.debug("Metering data accepted for %s", transaction_id)
            return

        if 400 <= resp.status_code < 500:
            raise ValidationError(
                f"metering API returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )

        raise MeteringError(
            f"metering API error (status {resp.status_code}): {resp.text}",
            status_code=resp.status_code,
        )
