"""Runway API client package — async HTTP interface to the Runway task API.

WHY: Task creation, status lookup, and completion polling share auth,
versioning, and error translation. This package keeps all Runway HTTP
traffic behind one client class.

HOW: RunwayClient wraps httpx.AsyncClient. Request and response payloads
are typed dataclasses defined in models.py.

RULES:
- All Runway HTTP calls go through RunwayClient (no direct httpx usage elsewhere)
- Authentication is via Bearer token plus the X-Runway-Version header
"""

from revenium_runway.api.client import RunwayClient
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

__all__ = [
    "DEFAULT_POLLING_POLICY",
    "ImageToVideoRequest",
    "PollingPolicy",
    "RunwayClient",
    "TaskResponse",
    "TaskStatus",
    "TaskStatusResponse",
    "VideoToVideoRequest",
    "VideoUpscaleRequest",
]
