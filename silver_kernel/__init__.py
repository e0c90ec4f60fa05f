"""
Silver Ledger Kernel

Billing and ledger engine for a silver shop with:
- Decimal invoice math from raw item measurements
- Per-day voucher allocation from locked counter rows
- Atomic sale, payment and silver-return operations
- Append-only customer ledger with before/after balance chain
"""

__version__ = "0.1.0"
