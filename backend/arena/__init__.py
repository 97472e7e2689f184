"""
Arena booking engine.

Court reservations with slot locking, unpaid-hold overrides and a
fine/credit ledger.
"""
__version__ = "1.0.0"
