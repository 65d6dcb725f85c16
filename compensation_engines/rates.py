"""
Rate Resolver Engine -- (package, date) to salary rate and deduction bases.

Responsibility:
    Look up the per-student monthly salary for a package at a date and the
    package's lateness/absence base amounts.  A missing entry resolves to a
    flagged zero, never an exception.

Architecture position:
    Engines -- pure lookup, zero I/O.  Called by the salary orchestrator once
    per (student, month chunk).

Invariants enforced:
    - At most one salary rate is effective per (package, date); overlapping
      effective windows are rejected when the table is built.
    - Missing configuration is always visible: ``ResolvedRate.salary_missing``
      / ``deduction_base_missing`` and a CONFIGURATION_MISSING warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from compensation_kernel.domain.records import (
    CalculationWarning,
    PackageDeductionBase,
    PackageSalaryRate,
)
from compensation_kernel.exceptions import ConfigurationMissingError
from compensation_kernel.logging_config import get_logger

logger = get_logger("engines.rates")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class RateTable:
    """Salary rates and deduction bases of one school."""

    salary_rates: tuple[PackageSalaryRate, ...] = ()
    deduction_bases: tuple[PackageDeductionBase, ...] = ()
    currency: str = "ETB"

    def __post_init__(self):
        rates = tuple(sorted(
            self.salary_rates,
            key=lambda r: (r.package, r.effective_from or date.min),
        ))
        object.__setattr__(self, "salary_rates", rates)
        object.__setattr__(
            self, "deduction_bases", tuple(sorted(self.deduction_bases, key=lambda b: b.package))
        )

        for prev, nxt in zip(rates, rates[1:]):
            if prev.package != nxt.package:
                continue
            prev_end = prev.effective_to or date.max
            if (nxt.effective_from or date.min) <= prev_end:
                raise ValueError(
                    f"Overlapping salary rates for package {prev.package!r}: "
                    f"{prev.effective_from}..{prev.effective_to} and "
                    f"{nxt.effective_from}..{nxt.effective_to}"
                )

        packages = [b.package for b in self.deduction_bases]
        if len(packages) != len(set(packages)):
            raise ValueError("Duplicate deduction base package")

    @property
    def packages(self) -> frozenset[str]:
        return frozenset(r.package for r in self.salary_rates)


@dataclass(frozen=True)
class ResolvedRate:
    """Rates effective for one package at one date."""

    package: str | None
    as_of: date
    monthly_salary: Decimal
    lateness_base_amount: Decimal
    absence_base_amount: Decimal
    salary_missing: bool = False
    deduction_base_missing: bool = False

    @property
    def missing(self) -> bool:
        return self.salary_missing or self.deduction_base_missing


def find_salary_rate(
    table: RateTable, package: str, as_of: date
) -> PackageSalaryRate | None:
    """Return the salary rate effective for ``package`` on ``as_of``, or None."""
    for rate in table.salary_rates:
        if rate.package == package and rate.is_effective(as_of):
            return rate
    return None


def find_deduction_base(table: RateTable, package: str) -> PackageDeductionBase | None:
    for base in table.deduction_bases:
        if base.package == package:
            return base
    return None


def resolve_rate(table: RateTable, *, package: str | None, as_of: date) -> ResolvedRate:
    """
    Resolve salary and deduction bases for a package at a date.

    Args:
        table: The school's rate table.
        package: Student package name; None or empty resolves as missing.
        as_of: Date the rate must be effective on.

    Returns:
        ResolvedRate; missing pieces are zero and flagged.
    """
    rate = find_salary_rate(table, package, as_of) if package else None
    base = find_deduction_base(table, package) if package else None

    resolved = ResolvedRate(
        package=package or None,
        as_of=as_of,
        monthly_salary=rate.monthly_amount if rate else _ZERO,
        lateness_base_amount=base.lateness_base_amount if base else _ZERO,
        absence_base_amount=base.absence_base_amount if base else _ZERO,
        salary_missing=rate is None,
        deduction_base_missing=base is None,
    )
    if resolved.missing:
        logger.debug(
            "rate_resolution_missing",
            extra={
                "package": package,
                "as_of": as_of,
                "salary_missing": resolved.salary_missing,
                "deduction_base_missing": resolved.deduction_base_missing,
            },
        )
    return resolved


def missing_rate_warnings(resolved: ResolvedRate, **context: str) -> list[CalculationWarning]:
    """CONFIGURATION_MISSING warnings describing what a resolution lacked."""
    warnings: list[CalculationWarning] = []
    key = resolved.package or "<none>"
    if resolved.salary_missing:
        warnings.append(CalculationWarning.from_error(
            ConfigurationMissingError("package_salary_rate", key),
            as_of=resolved.as_of.isoformat(), **context,
        ))
    if resolved.deduction_base_missing:
        warnings.append(CalculationWarning.from_error(
            ConfigurationMissingError("package_deduction_base", key),
            **context,
        ))
    return warnings
