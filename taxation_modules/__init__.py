"""
Taxation Modules.

Orchestration over the taxation kernel and engines.  The ``taxation``
module contains:
- Request, result and audit record DTOs (the nouns)
- Configuration schema (rounding precision, strict resolution)
- Collaborator contracts and their in-memory and SQL implementations
- The ``TaxationService`` orchestrator

Actual calculation logic lives in ``taxation_engines``.
"""

from taxation_modules import taxation

__all__ = ["taxation"]
