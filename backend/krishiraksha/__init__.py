"""
Krishiraksha integrity core.

Signed, expiring QR payloads for farmer batches and a supervised
transaction lifecycle for recording them on a ledger.
"""

__version__ = "0.1.0"
