"""Pure domain layer: clock, money, business numbers, DTOs, ledger rules, workflows."""
