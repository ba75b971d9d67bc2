#!/usr/bin/env python
"""
Fleet Telemetry API Server Runner.

Usage:
    python run_server.py

Or with PM2:
    pm2 start run_server.py --interpreter python

Environment:
    DASHBOARD_HOST / DASHBOARD_PORT (or PORT)   bind address
    SIMULATOR_ENABLED=true                post synthetic heartbeats for
                                          test machines (development)
    LOG_LEVEL                             logging level (default INFO)
"""

import asyncio
import logging
import os
import sys

import uvicorn

from core.config import load_config
from core.exceptions import FleetException
from dashboard.container import create_container
from dashboard.main import create_app
from fleet.simulator import DeviceSimulator

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


async def build_app():
    """Load configuration, wire services and build the ASGI app."""
    config = load_config()
    container = await create_container(config)

    background_tasks = []
    if os.getenv("SIMULATOR_ENABLED", "false").lower() in ("1", "true", "yes"):
        interval = float(os.getenv("SIMULATOR_INTERVAL_SECONDS", "30"))
        background_tasks.append(
            DeviceSimulator(container.heartbeats, container.registry, interval_seconds=interval)
        )
        logger.info(f"Device simulator enabled (every {interval}s)")

    return create_app(container, background_tasks=background_tasks)


async def serve(host: str, port: int) -> None:
    """Wire services and serve on the same event loop."""
    app = await build_app()
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info",
            access_log=True,
        )
    )
    await server.serve()


def main():
    """Run the fleet API server."""
    host = os.getenv("DASHBOARD_HOST", "0.0.0.0")
    port = int(os.getenv("DASHBOARD_PORT", os.getenv("PORT", "8000")))

    logger.info(f"Starting Fleet Telemetry API on {host}:{port}")

    try:
        asyncio.run(serve(host, port))
    except FleetException as e:
        logger.error(f"Failed to configure server: {e.message}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
