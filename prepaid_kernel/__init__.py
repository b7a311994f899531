"""
Prepaid Kernel - contract ledger core

A transactional ledger for prepaid lesson contracts with:
- Decimal-only money arithmetic with explicit rounding residue
- Date-scoped business numbers from locked counter rows
- Row-locked, version-checked contract mutations
- Exact reversal of lesson consumption
- Hash-chained audit trail
"""

__version__ = "0.1.0"
