"""
compensation_services -- stateful orchestration over selectors, config and engines.

Exports the salary, billing and configuration services and the shared
ResultCache they memoize through.
"""

from compensation_services.billing_service import BillingService
from compensation_services.configuration_service import ConfigurationService
from compensation_services.result_cache import CacheKey, CacheStats, ResultCache
from compensation_services.salary_service import (
    BatchFailure,
    SalaryBatch,
    SalaryDetails,
    SalaryService,
)

__all__ = [
    "BatchFailure",
    "BillingService",
    "CacheKey",
    "CacheStats",
    "ConfigurationService",
    "ResultCache",
    "SalaryBatch",
    "SalaryDetails",
    "SalaryService",
]
