"""
Module ORM Registry (``taxation_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` contains their table definitions before
``taxation_kernel.db.engine.create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by the kernel's
``create_tables()``; MUST NOT be imported at kernel module import time.
"""


def import_all_orm_models() -> None:
    """Import every ``taxation_modules.*.orm`` module to register ORM models.

    This function is idempotent -- repeated calls are harmless.
    """
    import taxation_modules.taxation.orm  # noqa: F401
