"""
prepaid_modules.contracts
=========================

Contract signing and top-up payments.  Thin transaction owner over
``ContractLedger.create_contract`` and ``ContractLedger.apply_payment``.
"""

from prepaid_modules.contracts.service import ContractService

__all__ = ["ContractService"]
