#!/usr/bin/env python3
"""
PeerPay Entry Point

Starts the FastAPI server with the transfer ledger core.
"""

import sys

from peerpay.api import run_server
from peerpay.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting PeerPay...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down PeerPay...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
