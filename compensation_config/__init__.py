"""
compensation_config -- single public entrypoint for compensation configuration.

Responsibility:
    Provides ``get_active_config()`` for file-based configuration sets and
    ``assemble_from_rows()`` for configuration stored per school.  Both
    return a frozen, validated ``CompensationConfig`` -- the only
    configuration object the services hand to the engines.

Architecture position:
    Configuration -- sits above ``compensation_kernel`` and
    ``compensation_engines`` and below ``compensation_services``.  The
    kernel and the engines MUST NEVER import from ``compensation_config``.

Invariants enforced:
    - Validation: a snapshot with validation errors is never returned.
    - Deterministic fingerprint: the same content always produces the same
      ``CompensationConfig.fingerprint``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set for the tenant and no
      default set.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful load emits a ``COMPENSATION_CONFIG_TRACE`` log entry
    with the tenant, fingerprint and source.  Salary results carry the same
    fingerprint, tying every figure back to the configuration it used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from compensation_config.assembler import assemble_from_rows
from compensation_config.loader import load_config
from compensation_config.schema import CompensationConfig, EngineSettings, TenantSettings
from compensation_config.validator import ConfigValidationResult, validate_configuration

_logger = logging.getLogger("compensation.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_SET = "default.yaml"


def get_active_config(tenant_id: str, config_dir: Path | None = None) -> CompensationConfig:
    """Load, validate and trace the configuration set for a school.

    Looks for ``<tenant_id>.yaml`` in the sets directory and falls back to
    ``default.yaml``.

    Args:
        tenant_id: School identifier.
        config_dir: Override path to the configuration sets directory.

    Raises:
        FileNotFoundError: If neither file exists.
        ValueError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{tenant_id}.yaml"
    if not path.exists():
        path = sets_dir / _DEFAULT_SET
    if not path.exists():
        raise FileNotFoundError(f"No configuration set for tenant {tenant_id!r} in {sets_dir}")

    config = load_config(path, tenant_id=tenant_id)
    ensure_valid(config)
    trace_config(config, source=path.name)
    return config


def ensure_valid(config: CompensationConfig) -> ConfigValidationResult:
    """Raise ValueError listing every error; return the result otherwise."""
    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"tenant_id": config.tenant_id, "warning": warning},
        )
    return validation


def trace_config(config: CompensationConfig, source: str) -> None:
    _logger.info(
        "COMPENSATION_CONFIG_TRACE",
        extra={
            "trace_type": "COMPENSATION_CONFIG_TRACE",
            "tenant_id": config.tenant_id,
            "fingerprint": config.fingerprint,
            "source": source,
            "package_count": len(config.rate_table.packages),
            "tier_count": len(config.lateness.tiers),
        },
    )


__all__ = [
    "CompensationConfig",
    "ConfigValidationResult",
    "EngineSettings",
    "TenantSettings",
    "assemble_from_rows",
    "ensure_valid",
    "get_active_config",
    "trace_config",
    "validate_configuration",
]
