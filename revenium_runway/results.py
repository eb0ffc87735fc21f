"""Result type returned to callers of the metered generation operations.

WHY: Callers get one object per generation call regardless of whether the
task succeeded, failed, or was canceled upstream. The same object is the
input to usage-record construction.

RULES:
- elapsed_s is wall-clock seconds from task submission to resolution; it is
  NOT the generated media duration (that lives in metadata)
- error and failure_code are copied from the provider's final status
- metadata is free-form; keys are merged into the usage record without
  overwriting computed fields
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from revenium_runway.api.models import TaskStatus


@dataclass
class GenerationResult:
    id: str
    status: TaskStatus | str
    output_urls: list[str] = field(default_factory=list)
    elapsed_s: float = 0.0
    model: str = ""
    error: str | None = None
    failure_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.SUCCEEDED and self.error is None
