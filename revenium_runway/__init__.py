"""Revenium Runway — Runway video generation with automatic usage metering.

WHY: Runway bills per generated second, and teams that resell or
chargeback that usage need every call recorded in Revenium. Doing it by
hand at every call site is easy to forget and easy to get wrong.

HOW: ReveniumRunway wraps the Runway task API (create -> poll -> result)
and, once a call resolves, sends a usage record to Revenium in a
background task. flush()/aclose() drain those tasks before shutdown.

RULES:
- Generation calls block the caller until the task resolves; metering never does
- Metering failures are logged and reported via a hook, never raised to the caller
- Always flush() or aclose() before the event loop ends
"""

__version__ = "0.1.0"

from revenium_runway.api.models import (  # noqa: E402
    ImageToVideoRequest,
    PollingPolicy,
    TaskStatus,
    VideoToVideoRequest,
    VideoUpscaleRequest,
)
from revenium_runway.config import Config  # noqa: E402
from revenium_runway.errors import (  # noqa: E402
    AuthenticationError,
    ConfigurationError,
    InternalError,
    MeteringError,
    NetworkError,
    ProviderError,
    ReveniumError,
    TaskError,
    ValidationError,
)
from revenium_runway.metering.payload import UsageMetadata  # noqa: E402
from revenium_runway.middleware import (  # noqa: E402
    ReveniumRunway,
    get_client,
    initialize,
    is_initialized,
    reset,
)
from revenium_runway.results import GenerationResult  # noqa: E402

__all__ = [
    "AuthenticationError",
    "Config",
    "ConfigurationError",
    "GenerationResult",
    "ImageToVideoRequest",
    "InternalError",
    "MeteringError",
    "NetworkError",
    "PollingPolicy",
    "ProviderError",
    "ReveniumError",
    "ReveniumRunway",
    "TaskError",
    "TaskStatus",
    "UsageMetadata",
    "ValidationError",
    "VideoToVideoRequest",
    "VideoUpscaleRequest",
    "get_client",
    "initialize",
    "is_initialized",
    "reset",
]
