"""
Module: compensation_kernel.selectors.billing_selector
Responsibility: Read-only queries for pricing plans and a school's
    subscription.
Architecture position: Kernel > Selectors.  Pricing plans are platform-wide;
    the subscription query is scoped to the selector's tenant (the school).
"""

from sqlalchemy import select

from compensation_kernel.domain.records import PricingPlan, SchoolSubscription
from compensation_kernel.exceptions import PlanNotFoundError, SubjectNotFoundError
from compensation_kernel.models.billing import PricingPlanModel, SchoolSubscriptionModel
from compensation_kernel.selectors.base import BaseSelector


class BillingSelector(BaseSelector[PricingPlanModel]):
    """Selector for plans and subscriptions."""

    def plans(self, active_only: bool = True) -> list[PricingPlan]:
        stmt = select(PricingPlanModel).order_by(PricingPlanModel.plan_code)
        if active_only:
            stmt = stmt.where(PricingPlanModel.is_active.is_(True))
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def plan(self, plan_id: str) -> PricingPlan:
        row = self.session.execute(
            select(PricingPlanModel).where(PricingPlanModel.plan_code == plan_id)
        ).scalar_one_or_none()
        if row is None:
            raise PlanNotFoundError(plan_id)
        return row.to_dto()

    def subscription(self) -> SchoolSubscription:
        row = self.session.execute(
            select(SchoolSubscriptionModel).where(
                SchoolSubscriptionModel.tenant_id == self.tenant_id
            )
        ).scalar_one_or_none()
        if row is None:
            raise SubjectNotFoundError(self.tenant_id, "school")
        return row.to_dto()
