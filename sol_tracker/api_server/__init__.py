"""
API server package: HTTP interface over the tracker service.

Exposes health, stats and transaction listings, plus refresh triggers.
Delegates everything to sol_tracker.ingestion.service.
"""
