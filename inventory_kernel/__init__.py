"""
Inventory Kernel

A durable, append-only stock ledger with:
- Row-locked, version-guarded quantity adjustments
- Time-boxed stock reservations with passive and active expiry
- Full auditability via per-product movement sequences
- Read-side projections for alerts, availability and valuation
"""

__version__ = "0.1.0"
