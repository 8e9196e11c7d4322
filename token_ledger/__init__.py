"""
Token Ledger

A fixed-supply fungible token ledger with direct transfers, delegated
allowances, checked uint256 arithmetic and an append-only event log.
"""

__version__ = "1.0.0"
