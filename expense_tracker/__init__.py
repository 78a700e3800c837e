"""
Expense Tracker - Source Package

A personal expense tracker: dated, categorized spending entries compared
against a monthly budget, shown in a user-selected currency while all
amounts are stored in one fixed base currency.

DESIGN PRINCIPLES:
1. Storage is authoritative - local state only follows successful writes
2. Summaries are recomputed from raw records, never patched incrementally
3. Conversion and aggregation degrade to documented defaults instead of failing
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
