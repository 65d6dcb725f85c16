"""
compensation_config.assembler -- composes stored rows into one snapshot.

Responsibility:
    Schools edit rates, deduction bases, lateness tiers and key/value
    settings through the configuration service.  This module composes those
    rows into a single ``CompensationConfig``; the YAML loader produces the
    same type for file-based sets.

Architecture position:
    Configuration -- receives plain domain records (already loaded by the
    selectors) and performs no I/O of its own.

Invariants enforced:
    - Same rows in any order yield the same fingerprint.
    - Stored setting strings are parsed with the loader's vocabulary, so a
      YAML set and its database copy are interchangeable.

Failure modes:
    - ``TierConfigurationError`` -- stored tiers do not form a valid table.
    - ``ValueError`` -- unparseable setting values or overlapping rates.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from compensation_config.loader import (
    absence_policy_from,
    lateness_policy_from,
    settings_from_mapping,
)
from compensation_config.schema import CompensationConfig, EngineSettings
from compensation_engines.rates import RateTable
from compensation_kernel.domain.records import (
    LatenessTier,
    PackageDeductionBase,
    PackageSalaryRate,
)
from compensation_kernel.logging_config import get_logger

logger = get_logger("config.assembler")


def assemble_from_rows(
    tenant_id: str,
    *,
    salary_rates: Iterable[PackageSalaryRate],
    deduction_bases: Iterable[PackageDeductionBase],
    tiers: Iterable[LatenessTier],
    settings: Mapping[str, str],
    engine: EngineSettings | None = None,
) -> CompensationConfig:
    """
    Build a configuration snapshot from stored rows.

    Args:
        tenant_id: School the rows belong to.
        salary_rates: Package salary rates (any order).
        deduction_bases: Package deduction bases (any order).
        tiers: Lateness tiers (any order; sorted before validation).
        settings: Key/value tenant settings as stored.
        engine: Operator settings; defaults apply when omitted.

    Returns:
        A frozen ``CompensationConfig``.
    """
    tenant_settings = settings_from_mapping(settings)
    rate_table = RateTable(
        salary_rates=tuple(salary_rates),
        deduction_bases=tuple(deduction_bases),
        currency=tenant_settings.currency,
    )
    ordered_tiers = sorted(tiers, key=lambda t: t.start_minute)
    config = CompensationConfig(
        tenant_id=tenant_id,
        rate_table=rate_table,
        lateness=lateness_policy_from(ordered_tiers, settings),
        absence=absence_policy_from(settings),
        settings=tenant_settings,
        engine=engine or EngineSettings(),
    )
    logger.debug(
        "config_assembled",
        extra={
            "tenant_id": tenant_id,
            "fingerprint": config.fingerprint,
            "packages": len(rate_table.packages),
            "tiers": len(config.lateness.tiers),
        },
    )
    return config
