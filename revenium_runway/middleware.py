"""Metered Runway client: create, wait, build result, meter in the background.

WHY: Callers want one awaitable per video operation that returns the
finished result, while usage for that call is reported to Revenium without
adding latency and without being lost when the program exits.

HOW: Three pieces work together:
  DispatchTracker — lock-guarded set of in-flight metering tasks, with
                    spawn/complete counters and a wait() that drains them
  ReveniumRunway  — the orchestrator; one method per operation kind runs
                    CREATED -> POLLING -> resolved, builds a
                    GenerationResult, spawns exactly one dispatch unit, and
                    returns without waiting for it
  initialize() / get_client() / reset()
                  — optional process-wide convenience façade

RULES:
- A creation failure raises with no dispatch
- A poll failure that never observed a status raises with no dispatch
- FAILED / CANCELED tasks return a GenerationResult (error set) and are metered
- Timeout, attempt exhaustion, or caller cancellation after a status was
  observed are metered, then the TaskError is raised with .result attached
- Dispatch failures are logged and passed to on_metering_error; they never
  reach the caller
- Dispatch units ignore the caller's cancel event
- Call flush() (or aclose()) before the event loop ends
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
import time
from typing import Any, Awaitable, Callable

from revenium_runway.api.client import RunwayClient
from revenium_runway.api.models import (
    DEFAULT_POLLING_POLICY,
    ImageToVideoRequest,
    PollingPolicy,
    TaskResponse,
    VideoToVideoRequest,
    VideoUpscaleRequest,
)
from revenium_runway.config import Config
from revenium_runway.errors import (
    TASK_CANCELED,
    TASK_FAILED,
    ConfigurationError,
    InternalError,
    ReveniumError,
    TaskError,
)
from revenium_runway.logging_setup import configure_logging
from revenium_runway.metering.client import MeteringClient
from revenium_runway.metering.payload import DEFAULT_DURATION_SECONDS, UsageMetadata
from revenium_runway.results import GenerationResult

logger = logging.getLogger(__name__)

DEFAULT_VIDEO_MODEL = "gen3a_turbo"
DEFAULT_UPSCALE_MODEL = "upscale"

MeteringErrorHook = Callable[[ReveniumError, GenerationResult], Any]


class DispatchTracker:
    """Thread-safe registry of outstanding metering dispatch tasks.

    WHY: Dispatch units are fire-and-forget, but an event loop that ends
    with tasks still pending cancels them and the usage record is lost.
    Something has to know what is still in flight so shutdown can wait.

    HOW: spawn() schedules the coroutine on the running loop and records
    the task under a threading.Lock; a done-callback removes it and bumps
    the completed counter. wait() gathers snapshots of the set until it
    is empty, so units spawned while waiting are also drained.

    RULES:
    - spawned and completed only ever increase
    - pending == spawned - completed
    - wait() never raises because of a unit's failure
    - wait() must run on the loop that spawned the tasks
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._lock = threading.Lock()
        self.spawned = 0
        self.completed = 0

    def spawn(self, coro: Awaitable[Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        with self._lock:
            self._tasks.add(task)
            self.spawned += 1
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        with self._lock:
            self._tasks.discard(task)
            self.completed += 1

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._tasks)

    async def wait(self) -> None:
        while True:
            with self._lock:
                tasks = list(self._tasks)
            if not tasks:
                return
            logger.debug("Waiting for %d pending metering dispatch(es)", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)


class ReveniumRunway:
    """Runway client that meters every resolved generation call.

    WHY: Wrapping the provider client keeps billing automatic: a caller
    cannot generate a video through this class without a usage record
    being attempted.

    HOW: Owns a RunwayClient, a MeteringClient, a PollingPolicy, and a
    DispatchTracker. The operation methods share _generate(), which
    implements the per-call state machine.

    RULES:
    - The config is validated at construction
    - Operation methods apply the default model to a copy of the request
      when req.model is unset; the caller's request is never modified
    - Use ``async with ReveniumRunway(config) as client:`` or await
      aclose() before exiting; both flush pending dispatches first
    """

    def __init__(
        self,
        config: Config,
        polling_policy: PollingPolicy | None = None,
        on_metering_error: MeteringErrorHook | None = None,
        runway_client: RunwayClient | None = None,
        metering_client: MeteringClient | None = None,
    ) -> None:
        if config is None:
            raise ConfigurationError("config cannot be None")
        config.validate()

        self._config = config
        self._policy = polling_policy or DEFAULT_POLLING_POLICY
        self._on_metering_error = on_metering_error
        self._runway = runway_client or RunwayClient(config)
        self._metering = metering_client or MeteringClient(config)
        self._dispatches = DispatchTracker()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def dispatches(self) -> DispatchTracker:
        return self._dispatches

    async def __aenter__(self) -> ReveniumRunway:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.aclose()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def image_to_video(
        self,
        req: ImageToVideoRequest,
        metadata: UsageMetadata | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationResult:
        """Generate a video from an image and meter the call."""
        if not req.model:
            req = dataclasses.replace(req, model=DEFAULT_VIDEO_MODEL)
        return await self._generate(
            "image-to-video",
            self._runway.create_image_to_video,
            req,
            metadata,
            cancel_event,
            requested_duration=req.duration or DEFAULT_DURATION_SECONDS,
        )

    async def video_to_video(
        self,
        req: VideoToVideoRequest,
        metadata: UsageMetadata | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationResult:
        """Transform a video and meter the call."""
        if not req.model:
            req = dataclasses.replace(req, model=DEFAULT_VIDEO_MODEL)
        return await self._generate(
            "video-to-video",
            self._runway.create_video_to_video,
            req,
            metadata,
            cancel_event,
            requested_duration=req.duration or DEFAULT_DURATION_SECONDS,
        )

    async def upscale_video(
        self,
        req: VideoUpscaleRequest,
        metadata: UsageMetadata | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationResult:
        """Upscale a video and meter the call."""
        if not req.model:
            req = dataclasses.replace(req, model=DEFAULT_UPSCALE_MODEL)
        return await self._generate(
            "video upscale",
            self._runway.create_video_upscale,
            req,
            metadata,
            cancel_event,
        )

    async def _generate(
        self,
        kind: str,
        create: Callable[[Any], Awaitable[TaskResponse]],
        req: Any,
        metadata: UsageMetadata | None,
        cancel_event: asyncio.Event | None,
        requested_duration: float | None = None,
    ) -> GenerationResult:
        start_time = time.monotonic()

        logger.debug("Creating %s task with model: %s", kind, req.model)
        task = await create(req)

        logger.info("Waiting for task %s to complete...", task.id)
        poll_error: TaskError | None = None
        try:
            final = await self._runway.wait_for_completion(task.id, self._policy, cancel_event)
        except TaskError as exc:
            if exc.last_status is None:
                raise
            final = exc.last_status
            poll_error = exc

        result = GenerationResult(
            id=task.id,
            status=final.status,
            output_urls=list(final.output),
            elapsed_s=time.monotonic() - start_time,
            model=req.model,
            error=final.error or final.failure_message,
            failure_code=final.failure_code,
        )
        if requested_duration is not None:
            result.metadata["requestedDuration"] = requested_duration

        # FAILED / CANCELED are outcomes, not caller errors
        unresolved = poll_error is not None and poll_error.reason not in (
            TASK_FAILED,
            TASK_CANCELED,
        )
        if unresolved:
            result.error = poll_error.message

        self._spawn_dispatch(result, metadata)

        if unresolved:
            poll_error.result = result
            raise poll_error
        return result

    # ------------------------------------------------------------------
    # Metering dispatch
    # ------------------------------------------------------------------

    def _spawn_dispatch(
        self,
        result: GenerationResult,
        metadata: UsageMetadata | None,
    ) -> None:
        self._dispatches.spawn(
            self._dispatch(result, metadata),
            name=f"metering-{result.id}",
        )

    async def _dispatch(
        self,
        result: GenerationResult,
        metadata: UsageMetadata | None,
    ) -> None:
        try:
            await self._metering.send_video_metering(result, metadata)
        except ReveniumError as exc:
            logger.error("Failed to send metering data for task %s: %s", result.id, exc)
            self._report_metering_error(exc, result)
        except Exception as exc:
            logger.exception("Metering dispatch for task %s crashed", result.id)
            self._report_metering_error(
                InternalError("metering dispatch fault", exc), result
            )
        else:
            logger.debug("Metering sent for task %s", result.id)

    def _report_metering_error(self, error: ReveniumError, result: GenerationResult) -> None:
        if self._on_metering_error is None:
            return
        try:
            self._on_metering_error(error, result)
        except Exception:
            logger.exception("on_metering_error hook raised for task %s", result.id)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait until every outstanding metering dispatch has finished."""
        await self._dispatches.wait()

    async def aclose(self) -> None:
        """Flush pending dispatches, then close both HTTP clients."""
        await self.flush()
        await self._runway.aclose()
        await self._metering.aclose()


# ---------------------------------------------------------------------------
# Optional process-wide façade
# ---------------------------------------------------------------------------

_global_client: ReveniumRunway | None = None
_global_lock = threading.Lock()


def initialize(config: Config | None = None, **overrides) -> ReveniumRunway:
    """Create the shared client once; later calls return the same instance.

    Without an explicit config, settings come from Config.from_env() with
    ``overrides`` applied on top.
    """
    global _global_client
    with _global_lock:
        if _global_client is not None:
            return _global_client

        if config is None:
            config = Config.from_env(**overrides)
        configure_logging(config.log_level, config.verbose_startup)
        logger.info("Initializing Revenium Runway middleware...")

        _global_client = ReveniumRunway(config)
        logger.info("Revenium Runway middleware initialized successfully")
        return _global_client


def is_initialized() -> bool:
    with _global_lock:
        return _global_client is not None


def get_client() -> ReveniumRunway:
    with _global_lock:
        if _global_client is None:
            raise ConfigurationError("middleware not initialized, call initialize() first")
        return _global_client


def reset() -> ReveniumRunway | None:
    """Forget the shared client and return it so the caller can aclose() it."""
    global _global_client
    with _global_lock:
        client, _global_client = _global_client, None
    return client
