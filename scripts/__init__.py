"""Operator command-line tools for the prepaid revenue ledger."""
