"""
Receipt Kernel - sequential receipt issuance

Issues internally numbered payment receipts for members:
- Atomic correlative allocation (no duplicates, gaps tolerated)
- Ordered render -> store artifact -> record income saga
- Idempotent artifact and ledger writes keyed by correlative
- Classified, reconcilable failure outcomes
"""

__version__ = "0.1.0"
