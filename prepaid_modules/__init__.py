"""
prepaid_modules
===============

Transaction-owning services built on the Contract Ledger: contract signing
and payments, the consumption engine, the refund workflow, daily settlement
and forecast overrides.

Architecture:
    Module layer.  May import prepaid_kernel and prepaid_engines.  MUST NOT
    be imported by either.  Modules do not call each other; each one calls
    the ledger, and every public mutation commits or rolls back before it
    returns.
"""
