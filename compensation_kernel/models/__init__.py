"""ORM models for the compensation kernel (read adapters over the school store)."""


def import_all_models() -> None:
    """Import every model module so Base.metadata knows all tables."""
    from compensation_kernel.models import (  # noqa: F401
        adjustments,
        billing,
        compensation,
        roster,
    )
