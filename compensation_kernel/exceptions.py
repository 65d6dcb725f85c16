"""
Typed Exception Hierarchy for the Compensation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Salary and billing figures are disputed by people. When a calculation
refuses to run, or degrades a line to zero, the caller must know exactly
which rule fired without parsing message strings.

Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - RIGHT way to handle errors:
    try:
        result = salary_service.calculate(teacher_id, start, end)
    except InvalidRangeError as e:
        api_response(code=e.code, start=e.start, end=e.end)
    except ComputationTimeoutError as e:
        if e.retryable:
            schedule_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from CompensationError:

    CompensationError (base)
    |
    +-- RequestError
    |   +-- InvalidRangeError
    |   +-- SubjectNotFoundError
    |   +-- SalaryHiddenError
    |
    +-- ConfigurationError
    |   +-- ConfigurationMissingError
    |   +-- TierConfigurationError
    |   +-- LatenessTierOverflowError
    |
    +-- RecordError
    |   +-- MalformedRecordError
    |
    +-- BillingError
    |   +-- SubscriptionInactiveError
    |   +-- PlanNotFoundError
    |
    +-- ComputationError
        +-- ComputationTimeoutError
        +-- InvariantViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|-------------------------------------
Request       | INVALID_RANGE               | start > end, or malformed dates
              | SUBJECT_NOT_FOUND           | Unknown teacher / school id
              | SALARY_NOT_VISIBLE          | Teacher-facing read while hidden
--------------|-----------------------------|-------------------------------------
Configuration | CONFIGURATION_MISSING       | Package has no rate / base amount
              | TIER_CONFIGURATION_INVALID  | Tier table overlaps, gaps, unsorted
              | LATENESS_TIER_OVERFLOW      | Lateness above all tiers ("error")
--------------|-----------------------------|-------------------------------------
Record        | MALFORMED_RECORD            | Source row missing required fields
--------------|-----------------------------|-------------------------------------
Billing       | SUBSCRIPTION_INACTIVE       | Live bill for inactive subscription
              | PLAN_NOT_FOUND              | Unknown pricing plan
--------------|-----------------------------|-------------------------------------
Computation   | COMPUTATION_TIMEOUT         | Deadline passed (retryable)
              | INVARIANT_VIOLATION         | Totals disagree with line items

===============================================================================
HANDLING PATTERNS
===============================================================================

1. DEGRADE, DON'T ABORT (configuration gaps):

    ConfigurationMissingError is almost never raised to callers. Engines
    build one, attach it to the result as a warning, and carry on with a
    zero line. It is raised only when a caller explicitly asks for strict
    resolution.

2. REJECT EARLY (request errors):

    InvalidRangeError and SubjectNotFoundError are raised before any fact
    is loaded.

3. RETRY (timeouts):

    except ComputationTimeoutError as e:
        if e.retryable:
            retry_later()

4. ALERT (invariant violations):

    InvariantViolationError means the calculator disagrees with itself.
    Strict mode raises; production mode logs at ERROR and publishes the
    line-item sum.
"""

from datetime import date


class CompensationError(Exception):
    """
    Base exception for all compensation kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COMPENSATION_ERROR"


# Request exceptions


class RequestError(CompensationError):
    """Base exception for rejected calculation requests."""

    code: str = "REQUEST_ERROR"


class InvalidRangeError(RequestError):
    """Requested date range is malformed or inverted."""

    code: str = "INVALID_RANGE"

    def __init__(
        self,
        start: date | str | None,
        end: date | str | None,
        reason: str = "Start date cannot be after end date.",
    ):
        self.start = str(start) if start is not None else None
        self.end = str(end) if end is not None else None
        self.reason = reason
        super().__init__(f"Invalid range {self.start}..{self.end}: {reason}")


class SubjectNotFoundError(RequestError):
    """Teacher or school with given ID was not found."""

    code: str = "SUBJECT_NOT_FOUND"

    def __init__(self, subject_id: str, subject_kind: str = "teacher"):
        self.subject_id = subject_id
        self.subject_kind = subject_kind
        super().__init__(f"{subject_kind.capitalize()} not found: {subject_id}")


class SalaryHiddenError(RequestError):
    """
    Salary figures are hidden from teachers by the school.

    Carries the school's custom message and admin contact so the caller can
    show them verbatim.
    """

    code: str = "SALARY_NOT_VISIBLE"

    def __init__(
        self,
        tenant_id: str,
        custom_message: str,
        admin_contact: str | None = None,
    ):
        self.tenant_id = tenant_id
        self.custom_message = custom_message
        self.admin_contact = admin_contact
        super().__init__(custom_message)


# Configuration exceptions


class ConfigurationError(CompensationError):
    """Base exception for configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class ConfigurationMissingError(ConfigurationError):
    """
    No configuration exists for a package or setting.

    Usually reported as a warning on a zeroed line rather than raised.
    """

    code: str = "CONFIGURATION_MISSING"

    def __init__(self, setting: str, key: str | None = None):
        self.setting = setting
        self.key = key
        target = f"{setting}[{key}]" if key is not None else setting
        super().__init__(f"Configuration missing: {target}")


class TierConfigurationError(ConfigurationError):
    """Lateness tier table is not sorted, contiguous, and non-overlapping."""

    code: str = "TIER_CONFIGURATION_INVALID"

    def __init__(self, reason: str, tier_index: int | None = None):
        self.reason = reason
        self.tier_index = tier_index
        where = f" (tier {tier_index})" if tier_index is not None else ""
        super().__init__(f"Invalid lateness tier table{where}: {reason}")


class LatenessTierOverflowError(ConfigurationError):
    """Minutes late exceed every tier and the overflow policy is 'error'."""

    code: str = "LATENESS_TIER_OVERFLOW"

    def __init__(self, minutes_late: int, max_tier_end: int):
        self.minutes_late = minutes_late
        self.max_tier_end = max_tier_end
        super().__init__(
            f"{minutes_late} minutes late exceeds the last tier "
            f"(ends at {max_tier_end})"
        )


# Record exceptions


class RecordError(CompensationError):
    """Base exception for source record problems."""

    code: str = "RECORD_ERROR"


class MalformedRecordError(RecordError):
    """A source record is missing required fields or holds invalid values."""

    code: str = "MALFORMED_RECORD"

    def __init__(self, record_type: str, record_id: str | None, reason: str):
        self.record_type = record_type
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Malformed {record_type} {record_id}: {reason}")


# Billing exceptions


class BillingError(CompensationError):
    """Base exception for school billing errors."""

    code: str = "BILLING_ERROR"


class SubscriptionInactiveError(BillingError):
    """A live bill was requested for a subscription that is not active."""

    code: str = "SUBSCRIPTION_INACTIVE"

    def __init__(self, school_id: str, status: str):
        self.school_id = school_id
        self.status = status
        super().__init__(
            f"Subscription for school {school_id} is not active (status={status})"
        )


class PlanNotFoundError(BillingError):
    """Pricing plan with given ID was not found or is inactive."""

    code: str = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Pricing plan not found: {plan_id}")


# Computation exceptions


class ComputationError(CompensationError):
    """Base exception for failures while a calculation is running."""

    code: str = "COMPUTATION_ERROR"


class ComputationTimeoutError(ComputationError):
    """
    The calculation deadline passed before a result was produced.

    No partial result is ever returned or cached.
    """

    code: str = "COMPUTATION_TIMEOUT"
    retryable: bool = True

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{operation} did not finish within {timeout_seconds}s"
        )


class InvariantViolationError(ComputationError):
    """A computed total disagrees with the sum of its own line items."""

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, expected: str, actual: str):
        self.invariant = invariant
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Invariant {invariant} violated: expected {expected}, got {actual}"
        )
