"""
Compensation configuration schema.

Defines the immutable configuration snapshot every salary and billing
calculation runs under.  Snapshots are built from YAML by the loader or from
stored rows by the assembler; both paths produce the same types and the same
fingerprint for the same content.

Key distinction:
  TenantSettings       = school-editable switches (Sundays, visibility, tz)
  EngineSettings       = operator knobs (timeouts, cache sizing, strictness)
  CompensationConfig   = the snapshot: rates + policies + settings, frozen,
                         with a deterministic content fingerprint
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from compensation_engines.absence import AbsencePolicy
from compensation_engines.lateness import LatenessPolicy
from compensation_engines.rates import RateTable
from compensation_engines.salary import SalaryRules

# ---------------------------------------------------------------------------
# Tenant setting keys (key/value rows of the school store)
# ---------------------------------------------------------------------------

SETTING_INCLUDE_SUNDAYS = "include_sundays_in_salary"
SETTING_SALARY_VISIBILITY = "teacher_salary_visibility"
SETTING_TIMEZONE = "timezone"
SETTING_CURRENCY = "currency"
SETTING_EXCUSED_THRESHOLD = "lateness_excused_threshold_minutes"
SETTING_OVERFLOW_POLICY = "lateness_overflow_policy"
SETTING_OBSERVATION = "lateness_observation"
SETTING_ABSENCE_MODE = "absence_mode"
SETTING_ABSENCE_FLAT_AMOUNT = "absence_flat_amount"
SETTING_ABSENCE_GRACE_DAYS = "absence_grace_days"

DEFAULT_HIDDEN_MESSAGE = "Salary information is currently hidden by your administrator."


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TenantSettings:
    """School-level switches."""

    include_sundays_in_salary: bool = True
    teacher_salary_visible: bool = True
    salary_hidden_message: str = DEFAULT_HIDDEN_MESSAGE
    admin_contact: str | None = None
    timezone: str = "UTC"
    currency: str = "ETB"


@dataclass(frozen=True)
class EngineSettings:
    """
    Operator settings for running calculations.

    ``strict_invariants`` of None means strict everywhere except production.
    """

    timeout_seconds: float = 30.0
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 500
    strict_invariants: bool | None = None
    environment: str = "development"

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be positive")
        if self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be at least 1")

    @property
    def strict(self) -> bool:
        if self.strict_invariants is not None:
            return self.strict_invariants
        return self.environment != "production"


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompensationConfig:
    """
    Immutable configuration snapshot of one school.

    ``fingerprint`` is a SHA-256 over the canonical JSON of the content
    (engine settings excluded: they do not change any figure).
    """

    tenant_id: str
    rate_table: RateTable = field(default_factory=RateTable)
    lateness: LatenessPolicy = field(default_factory=LatenessPolicy)
    absence: AbsencePolicy = field(default_factory=AbsencePolicy)
    settings: TenantSettings = field(default_factory=TenantSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    fingerprint: str = field(init=False, default="")

    def __post_init__(self):
        if self.rate_table.currency != self.settings.currency:
            raise ValueError(
                f"Rate table currency {self.rate_table.currency} differs from "
                f"school currency {self.settings.currency}"
            )
        object.__setattr__(self, "fingerprint", compute_fingerprint(canonical_payload(self)))

    def salary_rules(self) -> SalaryRules:
        return SalaryRules(
            rate_table=self.rate_table,
            lateness=self.lateness,
            absence=self.absence,
            include_sundays=self.settings.include_sundays_in_salary,
            timezone_name=self.settings.timezone,
            strict_invariants=self.engine.strict,
        )


def canonical_payload(config: CompensationConfig) -> dict[str, Any]:
    """Plain, JSON-ready view of everything that can change a figure."""
    return {
        "tenant_id": config.tenant_id,
        "currency": config.rate_table.currency,
        "salary_rates": [
            {
                "package": r.package,
                "monthly_amount": str(r.monthly_amount),
                "effective_from": r.effective_from.isoformat() if r.effective_from else None,
                "effective_to": r.effective_to.isoformat() if r.effective_to else None,
            }
            for r in config.rate_table.salary_rates
        ],
        "deduction_bases": [
            {
                "package": b.package,
                "lateness": str(b.lateness_base_amount),
                "absence": str(b.absence_base_amount),
            }
            for b in config.rate_table.deduction_bases
        ],
        "lateness": {
            "tiers": [
                [t.start_minute, t.end_minute, str(t.deduction_percent)]
                for t in config.lateness.tiers
            ],
            "excused_threshold_minutes": config.lateness.excused_threshold_minutes,
            "overflow": config.lateness.overflow.value,
            "observation": config.lateness.observation.value,
        },
        "absence": {
            "mode": config.absence.mode.value,
            "flat_amount": str(config.absence.flat_amount),
            "grace_days": config.absence.grace_days,
        },
        "settings": {
            "include_sundays_in_salary": config.settings.include_sundays_in_salary,
            "teacher_salary_visible": config.settings.teacher_salary_visible,
            "salary_hidden_message": config.settings.salary_hidden_message,
            "admin_contact": config.settings.admin_contact,
            "timezone": config.settings.timezone,
        },
    }


def compute_fingerprint(payload: dict[str, Any]) -> str:
    """Deterministic SHA-256 hex digest of a canonical payload."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
