"""
PeerPay

Peer-to-peer money transfer core: account balances, an append-only
transaction ledger, and a transfer coordinator that moves money between
two balances as one atomic unit.
"""

__version__ = "1.0.0"
