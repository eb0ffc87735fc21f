"""Runway task API request and response dataclasses.

WHY: The Runway task API speaks camelCase JSON with several optional
fields. Typed dataclasses make request construction explicit and keep the
polling loop free of raw dict lookups.

HOW: Request dataclasses serialise via to_dict(), dropping unset fields.
Response dataclasses parse via from_dict(). TaskStatus is a str enum so
values compare and serialise as the plain strings Runway returns.

RULES:
- Field names are snake_case here and camelCase on the wire
- Unknown statuses from the API are kept as plain strings, never dropped
- Only SUCCEEDED, FAILED and CANCELED are terminal
- PollingPolicy durations are in seconds
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class TaskStatus(str, enum.Enum):
    """Lifecycle states of a Runway generation task."""

    PENDING = "PENDING"
    THROTTLED = "THROTTLED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELED}
)


def parse_status(value: Any) -> TaskStatus | str:
    """Convert a raw status string to TaskStatus, keeping unknown values as-is."""
    try:
        return TaskStatus(value)
    except ValueError:
        return value


def is_terminal(status: TaskStatus | str | None) -> bool:
    return status in _TERMINAL_STATUSES


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None and v != ""}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass
class ImageToVideoRequest:
    """Body of POST /v1/image_to_video.

    RULES:
    - prompt_image is a URL or a data URI and is always sent
    - duration is 5 or 10 seconds on Runway's side; None means provider default
    - model is filled with the operation default by the orchestrator
    """

    prompt_image: str
    prompt_text: str | None = None
    model: str | None = None
    duration: int | None = None
    ratio: str | None = None
    seed: int | None = None
    watermark: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        body = _drop_none(
            {
                "promptText": self.prompt_text,
                "model": self.model,
                "duration": self.duration or None,
                "ratio": self.ratio,
                "seed": self.seed,
                "watermark": self.watermark,
            }
        )
        body["promptImage"] = self.prompt_image
        return body


@dataclass
class VideoToVideoRequest:
    """Body of POST /v1/video_to_video."""

    prompt_video: str
    prompt_text: str | None = None
    model: str | None = None
    duration: int | None = None
    seed: int | None = None
    watermark: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        body = _drop_none(
            {
                "promptText": self.prompt_text,
                "model": self.model,
                "duration": self.duration or None,
                "seed": self.seed,
                "watermark": self.watermark,
            }
        )
        body["promptVideo"] = self.prompt_video
        return body


@dataclass
class VideoUpscaleRequest:
    """Body of POST /v1/video_upscale."""

    prompt_video: str
    model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body = _drop_none({"model": self.model})
        body["promptVideo"] = self.prompt_video
        return body


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@dataclass
class TaskResponse:
    """Response of a task-creation POST.

    WHY: Creation returns immediately with the task ID; the task itself
    runs asynchronously on Runway.

    RULES:
    - id is always present
    - status is usually PENDING right after creation
    """

    id: str
    status: TaskStatus | str
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @classmethod
    def from_dict(cls, data: dict) -> TaskResponse:
        return cls(
            id=data["id"],
            status=parse_status(data.get("status", TaskStatus.PENDING.value)),
            error=data.get("error"),
        )


@dataclass
class TaskStatusResponse:
    """Response of GET /v1/tasks/{id}.

    WHY: The poller inspects status on every lookup; the orchestrator copies
    outputs, error text, and failure code into the GenerationResult.

    HOW: from_dict() tolerates absent optional fields and a null output.

    RULES:
    - id and status are required
    - output holds result URLs once the task has SUCCEEDED
    - error / failure_code / failure_message are only set on failure
    - progress is a fraction or percentage as reported by the provider
    """

    id: str
    status: TaskStatus | str
    progress: float | None = None
    output: list[str] = field(default_factory=list)
    error: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def failure_text(self) -> str:
        """Best available human-readable failure description."""
        return self.error or self.failure_message or "unknown error"

    @classmethod
    def from_dict(cls, data: dict) -> TaskStatusResponse:
        return cls(
            id=data["id"],
            status=parse_status(data["status"]),
            progress=data.get("progress"),
            output=list(data.get("output") or []),
            error=data.get("error"),
            failure_code=data.get("failureCode"),
            failure_message=data.get("failure") or data.get("failureMessage"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            metadata=dict(data.get("metadata") or {}),
        )


# ---------------------------------------------------------------------------
# Polling policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollingPolicy:
    """Bounds for the completion poller.

    WHY: Video generation takes from under a minute to about twenty. The
    defaults poll a 20-minute job a few dozen times without hammering the
    provider.

    RULES:
    - max_attempts and timeout are independent ceilings; the first one hit
      ends polling
    - The interval grows x1.5 per wait, capped at max_interval
    """

    max_attempts: int = 120
    initial_interval: float = 2.0
    max_interval: float = 10.0
    timeout: float = 20 * 60.0


DEFAULT_POLLING_POLICY = PollingPolicy()
