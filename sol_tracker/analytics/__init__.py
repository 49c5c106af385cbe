"""Aggregate statistics over the record set."""

from sol_tracker.analytics.stats import AggregateStats, build_stats_payload, compute_stats

__all__ = ["AggregateStats", "build_stats_payload", "compute_stats"]
