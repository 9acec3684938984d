"""Core arithmetic and rule text for the mock spread book.

This package contains pure, storage-agnostic building blocks:

- ``odds_math``:    profit/payout for actual and fair (no-vig) settlement
- ``spread_rules``: point-spread grading and settlement-criteria text

Nothing in this package imports from ``mockbook.services`` or ``mockbook.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
