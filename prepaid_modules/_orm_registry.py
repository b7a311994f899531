"""
Module ORM Registry (``prepaid_modules._orm_registry``).

Responsibility
--------------
Import every SQLAlchemy model, kernel and module, so ``Base.metadata``
holds the complete schema before ``create_all()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  ``prepaid_kernel.db.engine.create_tables``
imports this lazily; nothing else in the kernel does.
"""


def import_all_orm_models() -> None:
    """Register kernel tables first, then module tables that reference them.

    Idempotent.
    """
    import prepaid_kernel.models  # noqa: F401
    import prepaid_kernel.services.sequence_service  # noqa: F401  # sequence counters
    # fmt: off
    import prepaid_modules.forecast.orm  # noqa: F401
    import prepaid_modules.refund.orm  # noqa: F401
    import prepaid_modules.settlement.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """Create the full schema on the initialized engine."""
    from prepaid_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
