"""
Compensation configuration ORM models.

Lateness tiers, package salary rates, package deduction bases and the
per-school key/value settings.  All rows are tenant-scoped; the
configuration selector assembles them into one immutable snapshot.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from compensation_kernel.db.base import TenantScopedBase
from compensation_kernel.domain.records import (
    LatenessTier,
    PackageDeductionBase,
    PackageSalaryRate,
)


class LatenessTierModel(TenantScopedBase):
    """One half-open lateness band; ``end_minute`` NULL is unbounded."""

    __tablename__ = "lateness_tiers"

    start_minute: Mapped[int] = mapped_column(nullable=False)
    end_minute: Mapped[int | None] = mapped_column(nullable=True)
    deduction_percent: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "start_minute", name="uq_lateness_tier_start"),
    )

    def to_dto(self) -> LatenessTier:
        return LatenessTier(
            start_minute=self.start_minute,
            end_minute=self.end_minute,
            deduction_percent=self.deduction_percent,
        )


class PackageDeductionBaseModel(TenantScopedBase):
    """Lateness and absence base amounts for one package."""

    __tablename__ = "package_deduction_bases"

    package: Mapped[str] = mapped_column(String(100), nullable=False)
    lateness_base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    absence_base_amount: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "package", name="uq_deduction_base_package"),
    )

    def to_dto(self) -> PackageDeductionBase:
        return PackageDeductionBase(
            package=self.package,
            lateness_base_amount=self.lateness_base_amount,
            absence_base_amount=self.absence_base_amount,
        )


class PackageSalaryRateModel(TenantScopedBase):
    """Monthly per-student salary for a package, optionally date-bounded."""

    __tablename__ = "package_salary_rates"

    package: Mapped[str] = mapped_column(String(100), nullable=False)
    monthly_amount: Mapped[Decimal] = mapped_column(nullable=False)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("idx_salary_rate_package", "tenant_id", "package"),
    )

    def to_dto(self) -> PackageSalaryRate:
        return PackageSalaryRate(
            package=self.package,
            monthly_amount=self.monthly_amount,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
        )


class TenantSettingModel(TenantScopedBase):
    """A scoped key/value setting; values are stored as text."""

    __tablename__ = "tenant_settings"

    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_tenant_setting_key"),
    )

    def __repr__(self) -> str:
        return f"<TenantSettingModel {self.tenant_id}:{self.key}={self.value!r}>"
