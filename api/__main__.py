"""Command line interface for running the API server."""
import asyncio
import logging
import signal
import sys

import uvicorn

from config import load_settings_conf, SettingsError

from . import create_app

logger = logging.getLogger(__name__)

should_exit = False

def handle_shutdown(signum, frame):
    """Handle shutdown signals gracefully."""
    global should_exit
    logger.info("Shutdown signal received. Cleaning up...")
    should_exit = True

class UvicornServer:
    """Wrapper for running uvicorn with proper lifecycle management."""

    def __init__(self, app, host: str = "0.0.0.0", port: int = 8080):
        self.config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info"
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Run the server in a way that can be stopped."""
        await self.server.serve()

    async def stop(self):
        """Stop the server."""
        self.server.should_exit = True

async def main(settings):
    """Run the API server until a shutdown signal arrives."""
    global should_exit

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    server = UvicornServer(create_app(settings), host=settings['host'], port=settings['port'])
    task = asyncio.create_task(server.run(), name="api")
    logger.info(f"API listening on {settings['host']}:{settings['port']}")

    try:
        while not should_exit and not task.done():
            await asyncio.sleep(1)
    finally:
        logger.info("Stopping API server...")
        await server.stop()
        await task
        logger.info("Cleanup complete.")

if __name__ == "__main__":
    try:
        settings = load_settings_conf()
    except SettingsError as e:
        print(f"\n{e}")
        sys.exit(1)

    asyncio.run(main(settings))
