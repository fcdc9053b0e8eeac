"""
Taxation Kernel

Shared infrastructure for the tax calculation engine:
- Structured JSON logging with request-scoped context
- Typed exceptions with machine-readable codes
- Injectable clock and Decimal rounding helpers
- SQLAlchemy base classes, engine and session scope
"""

__version__ = "0.1.0"
