"""
compensation_services.configuration_service -- a school's compensation settings.

Responsibility:
    Load the active ``CompensationConfig`` of a school from the store and
    apply every settings mutation (rates, deduction bases, lateness tiers,
    Sunday flag, salary visibility, other key/value settings).  After every
    write the school's whole result-cache namespace is cleared.

Architecture position:
    Services -- composes ConfigurationSelector (read), the ORM models
    (write), the config assembler/validator and the ResultCache.

Invariants enforced:
    - Cache invalidation is per tenant and unconditional: any mutation clears
      every cached salary and bill of the school, not only matching keys.
    - A mutation that leaves the configuration invalid raises before the
      cache is touched; the caller's transaction is expected to roll back.
    - Lateness tiers are validated as a whole table before any row changes.

Failure modes:
    - TierConfigurationError for invalid tier tables.
    - ValueError when the stored configuration fails validation.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from compensation_config import CompensationConfig, EngineSettings, assemble_from_rows
from compensation_config import ensure_valid, trace_config
from compensation_config.schema import (
    SETTING_INCLUDE_SUNDAYS,
    SETTING_SALARY_VISIBILITY,
)
from compensation_engines.lateness import validate_tiers
from compensation_kernel.domain.records import LatenessTier, to_decimal
from compensation_kernel.logging_config import get_logger
from compensation_kernel.models.compensation import (
    LatenessTierModel,
    PackageDeductionBaseModel,
    PackageSalaryRateModel,
    TenantSettingModel,
)
from compensation_kernel.selectors.configuration_selector import ConfigurationSelector
from compensation_services.result_cache import ResultCache

logger = get_logger("services.configuration")


class ConfigurationService:
    """
    Reads and mutates one school's compensation configuration.

    Contract:
        Receives Session, tenant id and ResultCache via constructor
        injection.  Writes are flushed, never committed: the caller owns the
        transaction.
    """

    def __init__(
        self,
        session: Session,
        tenant_id: str,
        cache: ResultCache,
        engine_settings: EngineSettings | None = None,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._cache = cache
        self._engine_settings = engine_settings or EngineSettings()
        self._selector = ConfigurationSelector(session, tenant_id)

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    # -- reads -------------------------------------------------------------

    def active_config(self) -> CompensationConfig:
        """Assemble, validate and trace the stored configuration."""
        rows = self._selector.load()
        for warning in rows.warnings:
            logger.warning(
                "config_row_skipped",
                extra={"tenant_id": self._tenant_id, "warning": warning.message},
            )
        config = assemble_from_rows(
            self._tenant_id,
            salary_rates=rows.salary_rates,
            deduction_bases=rows.deduction_bases,
            tiers=rows.tiers,
            settings=rows.settings,
            engine=self._engine_settings,
        )
        ensure_valid(config)
        trace_config(config, source="store")
        return config

    # -- writes ------------------------------------------------------------

    def _after_write(self, change: str) -> None:
        self._session.flush()
        # fail the mutation if the result is unusable
        self.active_config()
        dropped = self._cache.clear_tenant(self._tenant_id)
        logger.info(
            "configuration_changed",
            extra={"tenant_id": self._tenant_id, "change": change, "cache_entries_dropped": dropped},
        )

    def set_setting(self, key: str, value: str) -> None:
        row = self._session.execute(
            select(TenantSettingModel).where(
                TenantSettingModel.tenant_id == self._tenant_id,
                TenantSettingModel.key == key,
            )
        ).scalar_one_or_none()
        if row is None:
            self._session.add(TenantSettingModel(tenant_id=self._tenant_id, key=key, value=value))
        else:
            row.value = value
        self._after_write(f"setting:{key}")

    def set_include_sundays(self, include: bool) -> None:
        self.set_setting(SETTING_INCLUDE_SUNDAYS, "true" if include else "false")

    def set_salary_visibility(
        self,
        visible: bool,
        custom_message: str | None = None,
        admin_contact: str | None = None,
    ) -> None:
        payload: dict[str, object] = {"showTeacherSalary": visible}
        if custom_message:
            payload["customMessage"] = custom_message
        if admin_contact:
            payload["adminContact"] = admin_contact
        self.set_setting(SETTING_SALARY_VISIBILITY, json.dumps(payload, sort_keys=True))

    def replace_lateness_tiers(self, tiers: Sequence[LatenessTier]) -> None:
        """Replace the whole tier table of the school."""
        validated = validate_tiers(sorted(tiers, key=lambda t: t.start_minute))
        self._session.execute(
            delete(LatenessTierModel).where(LatenessTierModel.tenant_id == self._tenant_id)
        )
        for tier in validated:
            self._session.add(LatenessTierModel(
                tenant_id=self._tenant_id,
                start_minute=tier.start_minute,
                end_minute=tier.end_minute,
                deduction_percent=tier.deduction_percent,
            ))
        self._after_write("lateness_tiers")

    def set_salary_rate(
        self,
        package: str,
        monthly_amount: Decimal | int | str,
        effective_from: date | None = None,
        effective_to: date | None = None,
    ) -> None:
        """Create or update the rate of a package for one effective window."""
        amount = to_decimal(monthly_amount, "monthly_amount")
        row = self._session.execute(
            select(PackageSalaryRateModel).where(
                PackageSalaryRateModel.tenant_id == self._tenant_id,
                PackageSalaryRateModel.package == package,
                PackageSalaryRateModel.effective_from.is_(None)
                if effective_from is None
                else PackageSalaryRateModel.effective_from == effective_from,
            )
        ).scalar_one_or_none()
        if row is None:
            self._session.add(PackageSalaryRateModel(
                tenant_id=self._tenant_id,
                package=package,
                monthly_amount=amount,
                effective_from=effective_from,
                effective_to=effective_to,
            ))
        else:
            row.monthly_amount = amount
            row.effective_to = effective_to
        self._after_write(f"salary_rate:{package}")

    def set_deduction_base(
        self,
        package: str,
        lateness_base_amount: Decimal | int | str,
        absence_base_amount: Decimal | int | str,
    ) -> None:
        lateness = to_decimal(lateness_base_amount, "lateness_base_amount")
        absence = to_decimal(absence_base_amount, "absence_base_amount")
        row = self._session.execute(
            select(PackageDeductionBaseModel).where(
                PackageDeductionBaseModel.tenant_id == self._tenant_id,
                PackageDeductionBaseModel.package == package,
            )
        ).scalar_one_or_none()
        if row is None:
            self._session.add(PackageDeductionBaseModel(
                tenant_id=self._tenant_id,
                package=package,
                lateness_base_amount=lateness,
                absence_base_amount=absence,
            ))
        else:
            row.lateness_base_amount = lateness
            row.absence_base_amount = absence
        self._after_write(f"deduction_base:{package}")

    def clear_cache(self) -> int:
        """Explicit cache control for the school."""
        return self._cache.clear_tenant(self._tenant_id)
