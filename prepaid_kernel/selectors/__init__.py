"""Read-only query selectors."""

from prepaid_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["LedgerSelector"]
