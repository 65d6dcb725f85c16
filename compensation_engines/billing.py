"""
School Billing Engine -- plan + live student count + features to a bill.

Responsibility:
    Price a school's subscription: a per-student base fee plus the flat
    price of every enabled feature, with human-readable breakdown strings
    that always agree with the numbers.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Live bills and previews go
    through the same ``calculate_school_bill`` function; the caller decides
    where the student count comes from.

Invariants enforced:
    - total_fee == base_fee + sum of charged feature amounts.
    - Disabled features stay listed with a zero charge.
    - Per-subscription feature overrides win over plan defaults.
    - Features are ordered by name, so identical inputs render identically.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from compensation_engines.tracer import traced_engine
from compensation_kernel.domain.records import (
    CalculationWarning,
    PlanFeature,
    PricingPlan,
)
from compensation_kernel.domain.values import Currency, Money
from compensation_kernel.logging_config import get_logger

logger = get_logger("engines.billing")

NO_FEATURES_TEXT = "No additional features"


@dataclass(frozen=True)
class FeatureFee:
    """One plan feature as billed to a school."""

    feature_code: str
    feature_name: str
    price: Decimal
    is_enabled: bool
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "featureCode": self.feature_code,
            "featureName": self.feature_name,
            "price": str(self.price),
            "isEnabled": self.is_enabled,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class BillingBreakdown:
    base_calculation: str
    feature_calculation: str
    total: str

    def to_dict(self) -> dict[str, str]:
        return {
            "baseCalculation": self.base_calculation,
            "featureCalculation": self.feature_calculation,
            "total": self.total,
        }


@dataclass(frozen=True)
class SchoolBill:
    """A priced subscription for one plan and student count."""

    plan_id: str
    plan_name: str
    currency: str
    base_rate: Decimal
    active_student_count: int
    base_fee: Decimal
    feature_fees: tuple[FeatureFee, ...]
    total_fee: Decimal
    breakdown: BillingBreakdown
    school_id: str | None = None
    stored_count_stale: bool = False
    warnings: tuple[CalculationWarning, ...] = ()

    @property
    def feature_total(self) -> Decimal:
        return sum((f.amount for f in self.feature_fees), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "schoolId": self.school_id,
            "planId": self.plan_id,
            "planName": self.plan_name,
            "currency": self.currency,
            "baseRate": str(self.base_rate),
            "activeStudentCount": self.active_student_count,
            "baseFee": str(self.base_fee),
            "featureFees": [f.to_dict() for f in self.feature_fees],
            "totalFee": str(self.total_fee),
            "breakdown": self.breakdown.to_dict(),
            "storedCountStale": self.stored_count_stale,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _fmt(amount: Decimal, currency: Currency) -> str:
    return f"{currency.code} {Money(amount, currency).round().amount:.{currency.decimal_places}f}"


def resolve_feature_fees(
    features: Sequence[PlanFeature],
    overrides: Mapping[str, bool] | None,
    currency: Currency,
) -> tuple[FeatureFee, ...]:
    """Apply overrides to plan defaults; disabled features are charged zero."""
    overrides = overrides or {}
    fees = []
    for feature in sorted(features, key=lambda f: (f.feature_name, f.feature_code)):
        enabled = overrides.get(feature.feature_code, feature.is_enabled)
        price = Money(feature.price, currency).round().amount
        fees.append(FeatureFee(
            feature_code=feature.feature_code,
            feature_name=feature.feature_name,
            price=price,
            is_enabled=enabled,
            amount=price if enabled else Money.zero(currency).round().amount,
        ))
    return tuple(fees)


@traced_engine(
    "school_billing", "1.0",
    fingerprint_fields=("plan", "active_student_count", "feature_overrides"),
)
def calculate_school_bill(
    *,
    plan: PricingPlan,
    active_student_count: int,
    feature_overrides: Mapping[str, bool] | None = None,
    school_id: str | None = None,
    stored_count: int | None = None,
) -> SchoolBill:
    """
    Price a plan for a number of active students.

    Args:
        plan: The pricing plan.
        active_student_count: Live count of active students.
        feature_overrides: Feature code -> enabled flag for this subscription.
        school_id: School being billed (None for previews).
        stored_count: The subscription's stored counter, compared against the
            live count only to flag staleness.

    Returns:
        SchoolBill whose total equals base fee plus charged features.

    Raises:
        ValueError: If the student count is negative.
    """
    if active_student_count < 0:
        raise ValueError("active_student_count cannot be negative")

    currency = Currency(plan.currency)
    base_rate = Money(plan.base_rate_per_student, currency).round().amount
    # Priced at the displayed rate so the breakdown text multiplies out.
    base_fee = (Money(base_rate, currency) * active_student_count).round().amount
    fees = resolve_feature_fees(plan.features, feature_overrides, currency)
    total = base_fee + sum((f.amount for f in fees), Decimal("0"))

    charged = [f for f in fees if f.is_enabled and f.amount > 0]
    breakdown = BillingBreakdown(
        base_calculation=(
            f"{_fmt(base_rate, currency)} × {active_student_count} students = "
            f"{_fmt(base_fee, currency)}"
        ),
        feature_calculation=(
            ", ".join(f"{f.feature_name}: {_fmt(f.amount, currency)}" for f in charged)
            or NO_FEATURES_TEXT
        ),
        total=_fmt(total, currency),
    )

    stale = stored_count is not None and stored_count != active_student_count
    if stale:
        logger.warning(
            "stored_student_count_stale",
            extra={
                "school_id": school_id,
                "stored_count": stored_count,
                "live_count": active_student_count,
            },
        )

    return SchoolBill(
        plan_id=plan.plan_id,
        plan_name=plan.name,
        currency=currency.code,
        base_rate=base_rate,
        active_student_count=active_student_count,
        base_fee=base_fee,
        feature_fees=fees,
        total_fee=total,
        breakdown=breakdown,
        school_id=school_id,
        stored_count_stale=stale,
    )


def price_all_plans(
    plans: Sequence[PricingPlan], active_student_count: int
) -> tuple[SchoolBill, ...]:
    """Preview every active plan for a student count, cheapest base rate first."""
    active = [p for p in plans if p.is_active]
    bills = [
        calculate_school_bill(plan=plan, active_student_count=active_student_count)
        for plan in active
    ]
    return tuple(sorted(bills, key=lambda b: (b.base_rate, b.plan_name)))
