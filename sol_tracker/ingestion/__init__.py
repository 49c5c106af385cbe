"""
Ingestion pipeline: record store, merge, budgeted orchestrator and the
tracker service that runs it on demand.
"""
