"""
compensation_services.billing_service -- school subscription bills.

Responsibility:
    Produce the live bill of a school (its subscription's plan priced for the
    school's live active-student count), previews for arbitrary plans and
    counts, the all-plans price list and plan-change proration.

Architecture position:
    Services -- composes BillingSelector, RosterSelector (live student
    count), ``compensation_engines.calculate_school_bill`` and the
    ResultCache.

Invariants enforced:
    - The live bill always uses a freshly counted student total; the
      subscription's stored counter is only compared, never trusted.
    - Live bills and previews share one formula (the billing engine).
    - Cached bills are keyed by the plan, overrides and live count, so a
      changed count or plan never reuses a stale bill.

Failure modes:
    - SubjectNotFoundError when the school has no subscription.
    - SubscriptionInactiveError for a live bill of an inactive subscription.
    - PlanNotFoundError for unknown plan ids.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from datetime import date

from sqlalchemy.orm import Session

from compensation_config.schema import compute_fingerprint
from compensation_engines.billing import SchoolBill, calculate_school_bill, price_all_plans
from compensation_engines.proration import PlanChangeProration, calculate_plan_change_proration
from compensation_kernel.domain.clock import Deadline
from compensation_kernel.domain.records import PricingPlan, SchoolSubscription
from compensation_kernel.exceptions import SubscriptionInactiveError
from compensation_kernel.logging_config import LogContext, get_logger
from compensation_kernel.selectors.billing_selector import BillingSelector
from compensation_kernel.selectors.roster_selector import RosterSelector
from compensation_services.result_cache import CacheKey, ResultCache

logger = get_logger("services.billing")


def _bill_fingerprint(
    plan: PricingPlan, overrides: Mapping[str, bool], student_count: int
) -> str:
    return compute_fingerprint({
        "plan": plan.plan_id,
        "rate": str(plan.base_rate_per_student),
        "currency": plan.currency,
        "features": sorted(
            [f.feature_code, f.feature_name, str(f.price), f.is_enabled] for f in plan.features
        ),
        "overrides": sorted(overrides.items()),
        "students": student_count,
    })


class BillingService:
    """
    Billing of one school.

    Contract:
        Receives Session, school id (the tenant) and ResultCache via
        constructor injection.  Read-only against the store.
    """

    def __init__(
        self,
        session: Session,
        school_id: str,
        cache: ResultCache,
        timeout_seconds: float = 30.0,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._school_id = school_id
        self._cache = cache
        self._timeout_seconds = timeout_seconds
        self._monotonic = monotonic
        self._billing = BillingSelector(session, school_id)
        self._roster = RosterSelector(session, school_id)

    def _active_subscription(self) -> SchoolSubscription:
        subscription = self._billing.subscription()
        if not subscription.is_active:
            raise SubscriptionInactiveError(self._school_id, subscription.status.value)
        return subscription

    def calculate_bill(self) -> SchoolBill:
        """Live bill of the school's active subscription."""
        subscription = self._active_subscription()
        plan = self._billing.plan(subscription.plan_id)
        live_count = self._roster.active_student_count()
        deadline = Deadline(self._timeout_seconds, "school_billing", monotonic=self._monotonic)
        key = CacheKey(
            tenant_id=self._school_id,
            kind="bill",
            subject_id=self._school_id,
            period_start=subscription.period_start,
            period_end=subscription.period_end,
            fingerprint=_bill_fingerprint(plan, subscription.feature_overrides, live_count),
        )

        def compute() -> SchoolBill:
            bill = calculate_school_bill(
                plan=plan,
                active_student_count=live_count,
                feature_overrides=subscription.feature_overrides,
                school_id=self._school_id,
                stored_count=subscription.active_student_count,
            )
            deadline.check()
            logger.info(
                "school_bill_calculated",
                extra={
                    "plan_id": plan.plan_id,
                    "active_student_count": live_count,
                    "total_fee": bill.total_fee,
                },
            )
            return bill

        with LogContext.bind(tenant_id=self._school_id, subject_id=self._school_id):
            return self._cache.get_or_compute(key, compute, deadline=deadline)

    def preview(
        self,
        plan_id: str,
        student_count: int,
        feature_overrides: Mapping[str, bool] | None = None,
    ) -> SchoolBill:
        """Price a plan for a hypothetical student count."""
        plan = self._billing.plan(plan_id)
        return calculate_school_bill(
            plan=plan,
            active_student_count=student_count,
            feature_overrides=feature_overrides,
        )

    def price_all_plans(self, student_count: int | None = None) -> tuple[SchoolBill, ...]:
        """Every active plan priced for ``student_count`` (live count by default)."""
        count = self._roster.active_student_count() if student_count is None else student_count
        return price_all_plans(self._billing.plans(active_only=True), count)

    def plan_change_proration(self, new_plan_id: str, change_date: date) -> PlanChangeProration:
        """
        Credit for the unused part of the cycle and the net charge of a switch.

        Cycle prices are the monthly bill totals (live count, current
        overrides) times the number of months in the billing cycle.
        """
        subscription = self._active_subscription()
        if subscription.period_start is None:
            raise ValueError(f"Subscription of school {self._school_id} has no period start")
        current_plan = self._billing.plan(subscription.plan_id)
        new_plan = self._billing.plan(new_plan_id)
        if current_plan.currency != new_plan.currency:
            raise ValueError(
                f"Cannot prorate between currencies {current_plan.currency} and {new_plan.currency}"
            )
        count = self._roster.active_student_count()
        months = subscription.billing_cycle.months
        current = calculate_school_bill(
            plan=current_plan,
            active_student_count=count,
            feature_overrides=subscription.feature_overrides,
        )
        upcoming = calculate_school_bill(
            plan=new_plan,
            active_student_count=count,
            feature_overrides=subscription.feature_overrides,
        )
        proration = calculate_plan_change_proration(
            current_price=current.total_fee * months,
            new_price=upcoming.total_fee * months,
            period_start=subscription.period_start,
            change_date=change_date,
            billing_cycle=subscription.billing_cycle,
            currency=current_plan.currency,
        )
        logger.info(
            "plan_change_prorated",
            extra={
                "tenant_id": self._school_id,
                "from_plan": current_plan.plan_id,
                "to_plan": new_plan.plan_id,
                "net_amount": proration.net_amount,
            },
        )
        return proration
