"""
Paid Search - pay a fixed on-chain fee per query, then search.
"""

__version__ = "0.1.0"
