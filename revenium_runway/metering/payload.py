"""Usage-record construction for the Revenium video metering endpoint.

WHY: Every resolved generation call is billed from one JSON object. The
accounting side bills per second of generated video, so the record must
always carry a numeric durationSeconds, and caller-supplied fields must
never be able to overwrite the computed billing fields.

HOW: build_usage_record() layers four sources in a fixed order, each one
only filling keys that are still absent:
  1. computed fields (identity, timing, stop reason, billing duration)
  2. result metadata
  3. caller identification / tracing fields from UsageMetadata
  4. UsageMetadata.custom entries
validate_usage_record() checks the outcome against USAGE_RECORD_SCHEMA
with jsonschema before it is sent. A custom entry whose key is a schema
field is checked against that field's rule first and dropped with a
warning when it does not match, so free-form data never blocks billing.

RULES:
- stopReason: SUCCEEDED -> END, FAILED -> ERROR, CANCELED -> CANCELLED;
  any result carrying an error forces ERROR
- durationSeconds: metadata "duration", else "durationSeconds", else
  "requestedDuration", else 5.0; booleans are not durations
- requestTime = responseTime - elapsed; both RFC 3339 UTC
- Empty / None UsageMetadata fields are skipped
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any

import jsonschema

from revenium_runway.api.models import TaskStatus
from revenium_runway.errors import ValidationError
from revenium_runway.results import GenerationResult
from revenium_runway.version import get_middleware_source

logger = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 5.0

_DURATION_KEYS = ("duration", "durationSeconds", "requestedDuration")

_STOP_REASONS = {
    TaskStatus.SUCCEEDED: "END",
    TaskStatus.FAILED: "ERROR",
    TaskStatus.CANCELED: "CANCELLED",
}

# UsageMetadata attribute -> usage record key
_METADATA_KEYS = {
    "organization_id": "organizationId",
    "product_id": "productId",
    "task_type": "taskType",
    "agent": "agent",
    "subscription_id": "subscriptionId",
    "trace_id": "traceId",
    "parent_transaction_id": "parentTransactionId",
    "trace_type": "traceType",
    "trace_name": "traceName",
    "environment": "environment",
    "region": "region",
    "retry_number": "retryNumber",
    "credential_alias": "credentialAlias",
    "subscriber": "subscriber",
    "task_id": "taskId",
    "response_quality_score": "responseQualityScore",
}

USAGE_RECORD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": [
        "operationType",
        "provider",
        "model",
        "transactionId",
        "requestTime",
        "responseTime",
        "requestDuration",
        "durationSeconds",
        "stopReason",
    ],
    "properties": {
        "operationType": {"const": "VIDEO"},
        "provider": {"type": "string"},
        "model": {"type": "string"},
        "transactionId": {"type": "string", "minLength": 1},
        "requestTime": {"type": "string"},
        "responseTime": {"type": "string"},
        "requestDuration": {"type": "integer", "minimum": 0},
        "durationSeconds": {"type": "number", "minimum": 0},
        "stopReason": {"enum": ["END", "ERROR", "CANCELLED"]},
        "retryNumber": {"type": "integer"},
        "responseQualityScore": {"type": "number"},
        "subscriber": {"type": "object"},
    },
}

_FIELD_VALIDATOR = jsonschema.validators.validator_for(USAGE_RECORD_SCHEMA)


@dataclass
class UsageMetadata:
    """Caller-supplied identification and tracing fields for one call.

    WHY: Accounting needs to attribute usage to an organization, product,
    subscriber, and trace. The caller knows these; the middleware does not.

    RULES:
    - Every field is optional; empty strings and None are not sent
    - custom entries go to the top level of the record and never replace
      an existing key
    - custom entries that break a schema field rule (e.g. a non-integer
      retryNumber) are dropped with a warning
    """

    organization_id: str = ""
    product_id: str = ""
    task_type: str = ""
    agent: str = ""
    subscription_id: str = ""
    trace_id: str = ""
    parent_transaction_id: str = ""
    trace_type: str = ""
    trace_name: str = ""
    environment: str = ""
    region: str = ""
    retry_number: int | None = None
    credential_alias: str = ""
    subscriber: dict[str, Any] | None = None
    task_id: str = ""
    response_quality_score: float | None = None
    custom: dict[str, Any] | None = None

    def identification_fields(self) -> dict[str, Any]:
        """Non-empty fields keyed by their usage-record names."""
        out: dict[str, Any] = {}
        for f in fields(self):
            key = _METADATA_KEYS.get(f.name)
            if key is None:
                continue
            value = getattr(self, f.name)
            if value is None or value == "" or value == {}:
                continue
            out[key] = value
        return out


def billing_duration(metadata: dict[str, Any] | None) -> float:
    """Pick the billable media duration out of result metadata."""
    for key in _DURATION_KEYS:
        value = (metadata or {}).get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return float(value)
    return DEFAULT_DURATION_SECONDS


def stop_reason(result: GenerationResult) -> str:
    if result.error:
        return "ERROR"
    return _STOP_REASONS.get(result.status, "END")


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _merge_missing(target: dict[str, Any], source: dict[str, Any] | None) -> None:
    for key, value in (source or {}).items():
        if key not in target:
            target[key] = value


def _merge_custom(target: dict[str, Any], custom: dict[str, Any] | None) -> None:
    for key, value in (custom or {}).items():
        if key in target:
            continue
        rule = USAGE_RECORD_SCHEMA["properties"].get(key)
        if rule is not None and not _FIELD_VALIDATOR(rule).is_valid(value):
            logger.warning("Dropping custom usage field %s=%r: does not match %s", key, value, rule)
            continue
        target[key] = value


def build_usage_record(
    result: GenerationResult,
    metadata: UsageMetadata | None = None,
    defaults: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Assemble the usage record for one resolved generation call.

    Args:
        result: The GenerationResult handed back to the caller.
        metadata: Optional caller identification / tracing fields.
        defaults: Fallback values (e.g. organizationId from config) used
            only when no earlier source set the key; applied after the
            caller's fields and before custom entries.
        now: Response timestamp; defaults to the current UTC time.

    Returns:
        A JSON-serialisable dict ready for the metering endpoint.
    """
    response_time = now or datetime.now(timezone.utc)
    request_time = response_time - timedelta(seconds=result.elapsed_s)

    record: dict[str, Any] = {
        "operationType": "VIDEO",
        "provider": "runway",
        "modelSource": "RUNWAY",
        "model": result.model,
        "transactionId": result.id,
        "requestTime": _rfc3339(request_time),
        "responseTime": _rfc3339(response_time),
        "requestDuration": int(result.elapsed_s * 1000),
        "durationSeconds": billing_duration(result.metadata),
        "stopReason": stop_reason(result),
        "costType": "AI",
        "isStreamed": False,
        "middlewareSource": get_middleware_source(),
    }
    if result.error:
        record["errorReason"] = result.error
    if result.failure_code:
        record["failureCode"] = result.failure_code

    _merge_missing(record, result.metadata)
    if metadata is not None:
        _merge_missing(record, metadata.identification_fields())
    _merge_missing(record, {k: v for k, v in (defaults or {}).items() if v})
    if metadata is not None:
        _merge_custom(record, metadata.custom)

    return record


def validate_usage_record(record: dict[str, Any]) -> None:
    """Raise ValidationError if the record does not match USAGE_RECORD_SCHEMA."""
    try:
        jsonschema.validate(instance=record, schema=USAGE_RECORD_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise ValidationError(
            f"usage record failed schema validation: {exc.message}", exc
        ) from exc
