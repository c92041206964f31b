"""Command line interface for running the API server."""
import argparse
import asyncio
import logging
import signal

import uvicorn

from database import init_db, close as db_close
from notifications import dispatcher

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

class UvicornServer:
    """Wrapper for running uvicorn with proper lifecycle management."""

    def __init__(self, app_path: str = "api:app", host: str = "0.0.0.0", port: int = 8000):
        self.config = uvicorn.Config(
            app_path,
            host=host,
            port=port,
            log_level="info"
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Run the server in a way that can be stopped."""
        await self.server.serve()

    def stop(self):
        """Ask the server to stop."""
        self.server.should_exit = True

async def main(host: str, port: int):
    """Initialize the database, then serve until interrupted."""
    server = UvicornServer(host=host, port=port)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, server.stop)

    try:
        logger.info("Initializing database...")
        await init_db()

        logger.info(f"Starting API server on {host}:{port}")
        await server.run()
    finally:
        logger.info("Waiting for pending notifications...")
        await dispatcher.drain()

        logger.info("Closing database connections...")
        await db_close()

        logger.info("Cleanup complete.")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the storefront API server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    asyncio.run(main(args.host, args.port))
