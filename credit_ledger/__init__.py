"""
Credit ledger worker: credit packages, purchases, usage accounting and billing state
"""

__version__ = "1.0.0"
