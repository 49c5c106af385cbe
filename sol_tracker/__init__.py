"""
SOL Distribution Tracker: incremental transaction ingestion for one Solana wallet.

Pages the wallet's signature history from an RPC endpoint under a strict
rate limit, classifies each transaction as a SOL transfer in or out,
persists the record set and serves aggregate statistics. Modular layout:
listener (RPC, paging, classification), ingestion (merge, orchestration),
database (persistence), analytics (stats), API server.
"""

__version__ = "0.1.0"
