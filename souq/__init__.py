"""
Souq
Multiagent halal marketplace backed by a hash-chained product ledger.
"""

__version__ = "0.1.0"
