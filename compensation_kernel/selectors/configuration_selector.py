"""
Module: compensation_kernel.selectors.configuration_selector
Responsibility: Load the stored configuration rows of one school: salary
    rates, deduction bases, lateness tiers and key/value settings.  The
    config layer assembles them into a ``CompensationConfig``.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass, field

from sqlalchemy import select

from compensation_kernel.domain.records import (
    CalculationWarning,
    LatenessTier,
    PackageDeductionBase,
    PackageSalaryRate,
)
from compensation_kernel.models.compensation import (
    LatenessTierModel,
    PackageDeductionBaseModel,
    PackageSalaryRateModel,
    TenantSettingModel,
)
from compensation_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ConfigurationRows:
    """Raw configuration of one school, as stored."""

    tenant_id: str
    salary_rates: tuple[PackageSalaryRate, ...] = ()
    deduction_bases: tuple[PackageDeductionBase, ...] = ()
    tiers: tuple[LatenessTier, ...] = ()
    settings: dict[str, str] = field(default_factory=dict)
    warnings: tuple[CalculationWarning, ...] = ()


class ConfigurationSelector(BaseSelector[TenantSettingModel]):
    """Selector for a school's stored compensation configuration."""

    def settings(self) -> dict[str, str]:
        rows = self.session.execute(
            select(TenantSettingModel).where(TenantSettingModel.tenant_id == self.tenant_id)
        ).scalars()
        return {row.key: row.value for row in rows}

    def setting(self, key: str) -> str | None:
        return self.session.execute(
            select(TenantSettingModel.value).where(
                TenantSettingModel.tenant_id == self.tenant_id,
                TenantSettingModel.key == key,
            )
        ).scalar_one_or_none()

    def load(self) -> ConfigurationRows:
        warnings: list[CalculationWarning] = []
        rates = self._convert(
            self.session.execute(
                select(PackageSalaryRateModel).where(
                    PackageSalaryRateModel.tenant_id == self.tenant_id
                )
            ).scalars(),
            "package_salary_rate",
            PackageSalaryRateModel.to_dto,
            warnings,
        )
        bases = self._convert(
            self.session.execute(
                select(PackageDeductionBaseModel).where(
                    PackageDeductionBaseModel.tenant_id == self.tenant_id
                )
            ).scalars(),
            "package_deduction_base",
            PackageDeductionBaseModel.to_dto,
            warnings,
        )
        tiers = self._convert(
            self.session.execute(
                select(LatenessTierModel)
                .where(LatenessTierModel.tenant_id == self.tenant_id)
                .order_by(LatenessTierModel.start_minute)
            ).scalars(),
            "lateness_tier",
            LatenessTierModel.to_dto,
            warnings,
        )
        return ConfigurationRows(
            tenant_id=self.tenant_id,
            salary_rates=tuple(rates),
            deduction_bases=tuple(bases),
            tiers=tuple(tiers),
            settings=self.settings(),
            warnings=tuple(warnings),
        )
