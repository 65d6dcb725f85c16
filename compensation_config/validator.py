"""
Configuration Validator (``compensation_config.validator``).

Responsibility
--------------
Validates a ``CompensationConfig`` snapshot before any calculation runs
under it.  Structural problems the dataclasses already reject (overlapping
tiers, overlapping rate windows) never reach this module; it checks the
cross-cutting consistency the individual records cannot see.

Architecture position
---------------------
**Config layer** -- called by ``get_active_config()`` and by the
configuration service after every mutation.

Invariants enforced
-------------------
* Currency must be a registered ISO 4217 code.
* Timezone must resolve to a known zone.
* Every package with a salary rate should have a deduction base, and the
  other way round.
* Monetary amounts are non-negative.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the snapshot
  MUST NOT be used for calculation.
* Validation warnings (``ConfigValidationResult.warnings``)  -> calculation
  proceeds; affected lines are zeroed with CONFIGURATION_MISSING warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from zoneinfo import ZoneInfoNotFoundError

from compensation_config.schema import CompensationConfig
from compensation_engines.absence import AbsenceMode
from compensation_engines.dates import resolve_timezone
from compensation_kernel.domain.currency import CurrencyRegistry


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block calculation but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: CompensationConfig) -> ConfigValidationResult:
    """
    Validate a configuration snapshot.

    Postconditions:
        - Returns a ``ConfigValidationResult`` with errors and warnings.
        - A configuration with errors MUST NOT be used for calculation.
    """
    result = ConfigValidationResult()

    _validate_currency(config, result)
    _validate_timezone(config, result)
    _validate_package_coverage(config, result)
    _validate_amounts(config, result)
    _validate_lateness(config, result)
    _validate_absence(config, result)

    return result


def _validate_currency(config: CompensationConfig, result: ConfigValidationResult) -> None:
    if not CurrencyRegistry.is_valid(config.settings.currency):
        result.add_error(f"Unknown currency code '{config.settings.currency}'")


def _validate_timezone(config: CompensationConfig, result: ConfigValidationResult) -> None:
    try:
        resolve_timezone(config.settings.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        result.add_error(f"Unknown timezone '{config.settings.timezone}': {e}")


def _validate_package_coverage(
    config: CompensationConfig, result: ConfigValidationResult
) -> None:
    """Packages should have both a salary rate and a deduction base."""
    with_rate = config.rate_table.packages
    with_base = {b.package for b in config.rate_table.deduction_bases}
    for package in sorted(with_rate - with_base):
        result.add_warning(
            f"Package '{package}' has a salary rate but no deduction base"
        )
    for package in sorted(with_base - with_rate):
        result.add_warning(
            f"Package '{package}' has a deduction base but no salary rate"
        )


def _validate_amounts(config: CompensationConfig, result: ConfigValidationResult) -> None:
    for rate in config.rate_table.salary_rates:
        if rate.monthly_amount < 0:
            result.add_error(f"Package '{rate.package}' salary rate is negative")
    for base in config.rate_table.deduction_bases:
        if base.lateness_base_amount < 0 or base.absence_base_amount < 0:
            result.add_error(f"Package '{base.package}' deduction base is negative")


def _validate_lateness(config: CompensationConfig, result: ConfigValidationResult) -> None:
    if not config.lateness.tiers:
        result.add_warning("No lateness tiers configured; lateness is never deducted")
        return
    first = config.lateness.tiers[0]
    if first.start_minute > config.lateness.excused_threshold_minutes + 1:
        result.add_warning(
            f"Lateness between {config.lateness.excused_threshold_minutes + 1} and "
            f"{first.start_minute} minutes matches no tier"
        )


def _validate_absence(config: CompensationConfig, result: ConfigValidationResult) -> None:
    if config.absence.mode == AbsenceMode.FLAT and config.absence.flat_amount == Decimal("0"):
        result.add_warning("Flat absence mode with a zero amount deducts nothing")
