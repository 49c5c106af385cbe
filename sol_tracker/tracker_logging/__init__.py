"""
Structured logging for the tracker.

JSON logs with timestamp, wallet_id, event_type. Use get_logger() in all
modules; ids and RPC keys are shortened or masked by the processors.
"""

from sol_tracker.tracker_logging.logger import bind_wallet, configure_logging, get_logger, short_id

__all__ = ["bind_wallet", "configure_logging", "get_logger", "short_id"]
