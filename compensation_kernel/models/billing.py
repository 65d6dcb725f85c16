"""
School billing ORM models: pricing plans, plan features, subscriptions and
per-subscription feature overrides.

Pricing plans are platform-wide (not tenant-scoped); subscriptions belong to
one school, whose id is the subscription's ``tenant_id``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compensation_kernel.db.base import Base, TenantScopedBase
from compensation_kernel.domain.records import (
    BillingCycle,
    PlanFeature,
    PricingPlan,
    SchoolSubscription,
    SubscriptionStatus,
)


class PricingPlanModel(Base):
    """A subscription plan with a per-student base rate."""

    __tablename__ = "pricing_plans"

    plan_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    base_rate_per_student: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    features: Mapped[list["PlanFeatureModel"]] = relationship(
        back_populates="plan", cascade="all, delete-orphan", lazy="selectin"
    )

    def to_dto(self) -> PricingPlan:
        return PricingPlan(
            plan_id=self.plan_code,
            name=self.name,
            base_rate_per_student=self.base_rate_per_student,
            currency=self.currency,
            features=tuple(f.to_dto() for f in self.features),
            is_active=self.is_active,
        )


class PlanFeatureModel(Base):
    """A feature offered on a plan, with its flat price and default flag."""

    __tablename__ = "plan_features"

    plan_id: Mapped[UUID] = mapped_column(ForeignKey("pricing_plans.id"), nullable=False)
    feature_code: Mapped[str] = mapped_column(String(64), nullable=False)
    feature_name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    plan: Mapped[PricingPlanModel] = relationship(back_populates="features")

    __table_args__ = (
        UniqueConstraint("plan_id", "feature_code", name="uq_plan_feature_code"),
    )

    def to_dto(self) -> PlanFeature:
        return PlanFeature(
            feature_code=self.feature_code,
            feature_name=self.feature_name,
            price=self.price,
            is_enabled=self.is_enabled,
        )


class SchoolSubscriptionModel(TenantScopedBase):
    """A school's subscription; ``active_student_count`` is a cached counter."""

    __tablename__ = "school_subscriptions"

    plan_code: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    active_student_count: Mapped[int] = mapped_column(nullable=False, default=0)
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    overrides: Mapped[list["SubscriptionFeatureOverrideModel"]] = relationship(
        back_populates="subscription", cascade="all, delete-orphan", lazy="selectin"
    )

    def to_dto(self) -> SchoolSubscription:
        return SchoolSubscription(
            school_id=self.tenant_id,
            plan_id=self.plan_code,
            status=SubscriptionStatus(self.status),
            active_student_count=self.active_student_count,
            billing_cycle=BillingCycle(self.billing_cycle),
            period_start=self.period_start,
            period_end=self.period_end,
            feature_overrides={o.feature_code: o.is_enabled for o in self.overrides},
        )


class SubscriptionFeatureOverrideModel(Base):
    """Per-subscription enable/disable of one feature code."""

    __tablename__ = "subscription_feature_overrides"

    subscription_id: Mapped[UUID] = mapped_column(
        ForeignKey("school_subscriptions.id"), nullable=False
    )
    feature_code: Mapped[str] = mapped_column(String(64), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)

    subscription: Mapped[SchoolSubscriptionModel] = relationship(back_populates="overrides")

    __table_args__ = (
        UniqueConstraint("subscription_id", "feature_code", name="uq_override_feature"),
    )
