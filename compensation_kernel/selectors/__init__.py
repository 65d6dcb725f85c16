"""Selectors for the compensation kernel (read side)."""

from compensation_kernel.selectors.adjustment_selector import (
    AdjustmentSelector,
    AdjustmentSnapshot,
)
from compensation_kernel.selectors.billing_selector import BillingSelector
from compensation_kernel.selectors.configuration_selector import (
    ConfigurationRows,
    ConfigurationSelector,
)
from compensation_kernel.selectors.roster_selector import (
    RosterSelector,
    RosterSnapshot,
    TeacherDTO,
)

__all__ = [
    "AdjustmentSelector",
    "AdjustmentSnapshot",
    "BillingSelector",
    "ConfigurationRows",
    "ConfigurationSelector",
    "RosterSelector",
    "RosterSnapshot",
    "TeacherDTO",
]
