"""
Configuration Loader (``compensation_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into the frozen
``compensation_config.schema`` types.  Also parses the string values of
stored tenant settings, which share the same vocabulary.

Architecture position
---------------------
**Config layer** -- sits above ``compensation_engines`` (whose policy
dataclasses it fills) and below ``compensation_services``.

Invariants enforced
-------------------
* No silent defaults for required fields: missing keys raise ``KeyError``.
* Every parsed object is a frozen dataclass.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid tier table  -> ``TierConfigurationError`` propagates.
* Invalid date / number  -> ``ValueError``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from compensation_config.schema import (
    DEFAULT_HIDDEN_MESSAGE,
    SETTING_ABSENCE_FLAT_AMOUNT,
    SETTING_ABSENCE_GRACE_DAYS,
    SETTING_ABSENCE_MODE,
    SETTING_CURRENCY,
    SETTING_EXCUSED_THRESHOLD,
    SETTING_INCLUDE_SUNDAYS,
    SETTING_OBSERVATION,
    SETTING_OVERFLOW_POLICY,
    SETTING_SALARY_VISIBILITY,
    SETTING_TIMEZONE,
    CompensationConfig,
    EngineSettings,
    TenantSettings,
)
from compensation_engines.absence import AbsencePolicy
from compensation_engines.lateness import LatenessPolicy
from compensation_engines.rates import RateTable
from compensation_kernel.domain.records import (
    LatenessTier,
    PackageDeductionBase,
    PackageSalaryRate,
)

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_optional_date(value: Any) -> date | None:
    return parse_date(value) if value not in (None, "") else None


def parse_bool(value: Any) -> bool:
    """Parse a bool from YAML or a stored setting string."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Cannot parse boolean from {value!r}")


def _amount(value: Any) -> str:
    # YAML floats are converted through str so 35.5 stays 35.5
    return str(value)


def parse_tier(data: Mapping[str, Any]) -> LatenessTier:
    """Parse a tier: ``{start: 5, end: 10, percent: 10}``; end may be null."""
    end = data.get("end")
    return LatenessTier(
        start_minute=int(data["start"]),
        end_minute=int(end) if end is not None else None,
        deduction_percent=_amount(data["percent"]),
    )


def parse_salary_rate(package: str, data: Any) -> PackageSalaryRate:
    """Parse a salary rate given as a bare amount or a mapping with dates."""
    if isinstance(data, Mapping):
        return PackageSalaryRate(
            package=package,
            monthly_amount=_amount(data["amount"]),
            effective_from=parse_optional_date(data.get("effective_from")),
            effective_to=parse_optional_date(data.get("effective_to")),
        )
    return PackageSalaryRate(package=package, monthly_amount=_amount(data))


def parse_deduction_base(package: str, data: Mapping[str, Any]) -> PackageDeductionBase:
    return PackageDeductionBase(
        package=package,
        lateness_base_amount=_amount(data["lateness"]),
        absence_base_amount=_amount(data["absence"]),
    )


def parse_visibility(raw: str | Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Parse the salary-visibility setting.

    Stored as JSON ``{"showTeacherSalary": bool, "customMessage": str,
    "adminContact": str}``.
    """
    if raw is None or raw == "":
        return {}
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    if not isinstance(data, dict):
        raise ValueError(f"Salary visibility setting must be an object: {raw!r}")
    return data


def settings_from_mapping(values: Mapping[str, Any]) -> TenantSettings:
    """Build TenantSettings from stored key/value settings."""
    visibility = parse_visibility(values.get(SETTING_SALARY_VISIBILITY))
    return TenantSettings(
        include_sundays_in_salary=parse_bool(values.get(SETTING_INCLUDE_SUNDAYS, True)),
        teacher_salary_visible=parse_bool(visibility.get("showTeacherSalary", True)),
        salary_hidden_message=visibility.get("customMessage") or DEFAULT_HIDDEN_MESSAGE,
        admin_contact=visibility.get("adminContact") or None,
        timezone=str(values.get(SETTING_TIMEZONE) or "UTC"),
        currency=str(values.get(SETTING_CURRENCY) or "ETB").upper(),
    )


def lateness_policy_from(tiers: list[LatenessTier], values: Mapping[str, Any]) -> LatenessPolicy:
    return LatenessPolicy(
        tiers=tuple(tiers),
        excused_threshold_minutes=int(values.get(SETTING_EXCUSED_THRESHOLD, 3)),
        overflow=str(values.get(SETTING_OVERFLOW_POLICY) or "clamp"),
        observation=str(values.get(SETTING_OBSERVATION) or "sent"),
    )


def absence_policy_from(values: Mapping[str, Any]) -> AbsencePolicy:
    return AbsencePolicy(
        mode=str(values.get(SETTING_ABSENCE_MODE) or "package"),
        flat_amount=_amount(values.get(SETTING_ABSENCE_FLAT_AMOUNT, 0)),
        grace_days=int(values.get(SETTING_ABSENCE_GRACE_DAYS, 1)),
    )


def parse_engine_settings(data: Mapping[str, Any] | None) -> EngineSettings:
    data = data or {}
    strict = data.get("strict_invariants")
    return EngineSettings(
        timeout_seconds=float(data.get("timeout_seconds", 30)),
        cache_ttl_seconds=float(data.get("cache_ttl_seconds", 300)),
        cache_max_entries=int(data.get("cache_max_entries", 500)),
        strict_invariants=parse_bool(strict) if strict is not None else None,
        environment=str(data.get("environment", "development")),
    )


def config_from_dict(data: Mapping[str, Any], tenant_id: str | None = None) -> CompensationConfig:
    """
    Parse a configuration document.

    Expected shape::

        tenant_id: school-1
        settings: {currency: ETB, include_sundays_in_salary: false, ...}
        lateness: {tiers: [{start: 0, end: 5, percent: 0}, ...]}
        salary_rates: {"3 days": 1200, "5 days": {amount: 2000, effective_from: 2024-01-01}}
        deduction_bases: {"3 days": {lateness: 40, absence: 60}}
        engine: {timeout_seconds: 30}
    """
    # lateness and absence sections fold into the flat settings vocabulary
    settings_values: dict[str, Any] = dict(data.get("settings") or {})
    lateness_data = data.get("lateness") or {}
    for key, setting in (
        ("excused_threshold_minutes", SETTING_EXCUSED_THRESHOLD),
        ("overflow", SETTING_OVERFLOW_POLICY),
        ("observation", SETTING_OBSERVATION),
    ):
        if key in lateness_data:
            settings_values[setting] = lateness_data[key]
    absence_data = data.get("absence") or {}
    for key, setting in (
        ("mode", SETTING_ABSENCE_MODE),
        ("flat_amount", SETTING_ABSENCE_FLAT_AMOUNT),
        ("grace_days", SETTING_ABSENCE_GRACE_DAYS),
    ):
        if key in absence_data:
            settings_values[setting] = absence_data[key]

    settings = settings_from_mapping(settings_values)
    rate_table = RateTable(
        salary_rates=tuple(
            parse_salary_rate(str(package), value)
            for package, value in (data.get("salary_rates") or {}).items()
        ),
        deduction_bases=tuple(
            parse_deduction_base(str(package), value)
            for package, value in (data.get("deduction_bases") or {}).items()
        ),
        currency=settings.currency,
    )
    return CompensationConfig(
        tenant_id=tenant_id or data["tenant_id"],
        rate_table=rate_table,
        lateness=lateness_policy_from(
            [parse_tier(t) for t in lateness_data.get("tiers") or []], settings_values
        ),
        absence=absence_policy_from(settings_values),
        settings=settings,
        engine=parse_engine_settings(data.get("engine")),
    )


def load_config(path: Path, tenant_id: str | None = None) -> CompensationConfig:
    """Load and parse one YAML configuration file."""
    return config_from_dict(load_yaml_file(path), tenant_id=tenant_id)
