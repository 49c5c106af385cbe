"""
Main entrypoint: FastAPI server for the SOL distribution tracker.

Ingestion runs on demand (stats requests past the cache window, or the
refresh endpoints), so the process only hosts the API.

Env: TRACKED_WALLET_ADDRESS, SOLANA_RPC_URL or HELIUS_API_KEY, TRACKER_PROFILE,
API_HOST, API_PORT, LOG_LEVEL.

Equivalent: uvicorn sol_tracker.api_server.server:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from sol_tracker.tracker_logging import get_logger

logger = get_logger("main")


def main() -> None:
    api_host = os.getenv("API_HOST", "0.0.0.0").strip()
    api_port = int(os.getenv("API_PORT", "8000").strip() or "8000")

    from sol_tracker.api_server.server import app
    import uvicorn

    logger.info("main_server_starting", host=api_host, port=api_port)
    uvicorn.run(app, host=api_host, port=api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
