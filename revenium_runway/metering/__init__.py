"""Revenium metering package — usage-record construction and delivery.

WHY: Billing data is produced after every resolved generation call and
delivered off the caller's path. Keeping record construction and delivery
here separates accounting rules from the Runway client.

HOW: payload.py builds and validates the record; client.py delivers it
over a shared pooled httpx.AsyncClient with bounded retries.
"""

from revenium_runway.metering.client import MeteringClient
from revenium_runway.metering.payload import (
    DEFAULT_DURATION_SECONDS,
    UsageMetadata,
    build_usage_record,
    validate_usage_record,
)

__all__ = [
    "DEFAULT_DURATION_SECONDS",
    "MeteringClient",
    "UsageMetadata",
    "build_usage_record",
    "validate_usage_record",
]
