"""
fintrack - Source Package

A personal finance tracker: accounts, transactions, categories,
budgets, tags and groups, with dashboards and CSV bulk-import.

DESIGN PRINCIPLES:
1. Every record belongs to exactly one user (system categories excepted)
2. Balances are derived from transactions, never typed in
3. Imports never half-succeed: invalid rows are reported, valid rows go in one batch
4. Every change to money-bearing records is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "fintrack Team"
