"""
Unit tests for the typed exception hierarchy and calculation warnings.
"""

from datetime import date

import pytest

from compensation_kernel.domain.records import CalculationWarning
from compensation_kernel.exceptions import (
    BillingError,
    CompensationError,
    ComputationTimeoutError,
    ConfigurationError,
    ConfigurationMissingError,
    InvalidRangeError,
    InvariantViolationError,
    LatenessTierOverflowError,
    MalformedRecordError,
    PlanNotFoundError,
    RecordError,
    RequestError,
    SalaryHiddenError,
    SubjectNotFoundError,
    SubscriptionInactiveError,
    TierConfigurationError,
)


@pytest.mark.parametrize("error, code, family", [
    (InvalidRangeError(date(2024, 11, 30), date(2024, 11, 1)), "INVALID_RANGE", RequestError),
    (SubjectNotFoundError("t-9"), "SUBJECT_NOT_FOUND", RequestError),
    (SalaryHiddenError("school-1", "Ask HR"), "SALARY_NOT_VISIBLE", RequestError),
    (ConfigurationMissingError("salary_rate", "3 days"), "CONFIGURATION_MISSING", ConfigurationError),
    (TierConfigurationError("overlap", 1), "TIER_CONFIGURATION_INVALID", ConfigurationError),
    (LatenessTierOverflowError(45, 30), "LATENESS_TIER_OVERFLOW", ConfigurationError),
    (MalformedRecordError("assignment", "a-1", "no start"), "MALFORMED_RECORD", RecordError),
    (SubscriptionInactiveError("school-1", "cancelled"), "SUBSCRIPTION_INACTIVE", BillingError),
    (PlanNotFoundError("plan-gold"), "PLAN_NOT_FOUND", BillingError),
    (ComputationTimeoutError("salary_calculation", 30), "COMPUTATION_TIMEOUT", CompensationError),
    (InvariantViolationError("net", "1.00", "2.00"), "INVARIANT_VIOLATION", CompensationError),
])
def test_codes_and_hierarchy(error, code, family):
    assert error.code == code
    assert isinstance(error, family)
    assert isinstance(error, CompensationError)


def test_only_timeouts_are_retryable():
    assert ComputationTimeoutError("x", 1).retryable
    assert not getattr(InvalidRangeError("a", "b"), "retryable", False)


def test_structured_fields():
    error = InvalidRangeError(date(2024, 11, 30), date(2024, 11, 1))
    assert (error.start, error.end) == ("2024-11-30", "2024-11-01")

    missing = ConfigurationMissingError("salary_rate", "3 days")
    assert str(missing) == "Configuration missing: salary_rate[3 days]"


def test_warning_from_error():
    warning = CalculationWarning.from_error(
        ConfigurationMissingError("salary_rate", "Weekend"), student_id="s-1", extra=None,
    )
    assert warning.code == "CONFIGURATION_MISSING"
    assert warning.to_dict()["context"] == {"student_id": "s-1"}


def test_warning_from_plain_exception():
    assert CalculationWarning.from_error(KeyError("x")).code == "KeyError"
