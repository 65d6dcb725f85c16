"""
Compensation Kernel

Shared foundation for the compensation and billing engines:
- Typed error hierarchy with stable codes
- Structured JSON logging with request-scoped context
- Immutable domain records and money values
- Read-only persistence adapters (ORM models and selectors)
"""

__version__ = "0.1.0"
