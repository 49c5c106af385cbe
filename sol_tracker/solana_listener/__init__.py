"""
Solana listener: RPC transport, rate limiting, signature paging and
transaction classification for the tracked wallet.
"""
