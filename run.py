#!/usr/bin/env python3
"""
Entry point script to run the LocalChat backend.

This script should be run from the project root directory:
    python run.py

Environment variables:
    APP_HOST: Host to bind to (default: 127.0.0.1)
    APP_PORT: Port to bind to (default: 8000)
    APP_DEBUG: Enable debug mode (default: false)
    APP_TIMEOUT: Keep-alive timeout in seconds (default: 600)
"""
import asyncio

from hypercorn.asyncio import serve
from hypercorn.config import Config

if __name__ == "__main__":
    from application.app import app, logger
    from common.config.config import APP_DEBUG, APP_HOST, APP_PORT, APP_TIMEOUT

    # Configure Hypercorn with extended timeouts for the long-lived event stream
    config = Config()
    config.bind = [f"{APP_HOST}:{APP_PORT}"]

    config.keep_alive_timeout = APP_TIMEOUT  # Keep-alive for SSE connections
    config.shutdown_timeout = 30  # Let in-flight generations persist their state
    config.graceful_timeout = 30

    if APP_DEBUG:
        config.loglevel = "DEBUG"
        config.accesslog = "-"  # Log to stdout
        config.errorlog = "-"

    logger.info(f"Starting LocalChat on {APP_HOST}:{APP_PORT}")
    logger.info(f"Keep-alive timeout: {APP_TIMEOUT} seconds")
    logger.info(f"Debug mode: {APP_DEBUG}")

    # Run with Hypercorn
    asyncio.run(serve(app, config))
