# =============================================================================
# Error Taxonomy — Report-Level Failures
# =============================================================================
#
# Only two conditions stop a report from being produced:
#
#   RequestInvalid         — malformed client identifier; raised before any
#                            adapter is dispatched.
#   AggregationIncomplete  — a mandatory section (identity) is absent after
#                            normalization; no partial model is returned.
#
# Everything else is data, not an exception:
#   - a failed/timed-out source is a SourceResult with status failed/timeout
#     and degrades its section to `absent`
#   - a malformed leaf is a Leaf with state `malformed` and its raw value
#   - an undefined metric is a Metric with `available=False`
#
# SourceFetchError is adapter-internal: adapters raise it from their loaders
# and the guard in sources/base.py converts it into a failed SourceResult.
# It never crosses the aggregator boundary.
# =============================================================================

from __future__ import annotations

import enum
from typing import Any


class SourceErrorKind(str, enum.Enum):
    """Classification of an upstream failure, as recorded in the manifest."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


class ReportError(Exception):
    """Base class for failures that abort a whole report request."""

    error_code = "ReportError"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RequestInvalid(ReportError):
    """The client identifier is missing, malformed, or of the wrong type."""

    error_code = "RequestInvalid"


class AggregationIncomplete(ReportError):
    """A mandatory section could not be assembled."""

    error_code = "AggregationIncomplete"
    retryable = True

    def __init__(
        self,
        missing_sections: list[str],
        reasons: dict[str, str] | None = None,
        manifest: dict[str, dict[str, Any]] | None = None,
        session_id: str | None = None,
    ):
        super().__init__(
            "Report could not be produced: mandatory section(s) "
            f"{', '.join(missing_sections)} unavailable.",
            details={
                "missing_sections": missing_sections,
                "reasons": reasons or {},
            },
        )
        self.missing_sections = missing_sections
        # Per-source manifest of the failed run, kept for run history only.
        self.manifest = manifest or {}
        self.session_id = session_id


class SourceFetchError(Exception):
    """Raised inside an adapter to report a classified upstream failure."""

    def __init__(self, kind: SourceErrorKind, detail: str = ""):
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail


class InvalidTransition(RuntimeError):
    """A report session was asked to move to a state it cannot reach."""
