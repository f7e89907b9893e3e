"""
Gateway entry point.
"""
import argparse
import asyncio
import signal
import sys
from typing import Optional, Sequence

from aiproxy.core.config import settings
from aiproxy.core.database import close_db, init_db
from aiproxy.core.exceptions import ServerStartError
from aiproxy.core.logger import get_logger
from aiproxy.server.proxy import ProxyServer

logger = get_logger(__name__)


async def serve(port: Optional[int] = None) -> None:
    """
    Run the gateway until SIGINT or SIGTERM.

    Args:
        port: Preferred listen port
    """
    logger.info("Starting AI proxy gateway")
    logger.info(f"Environment: {settings.app_env}")

    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}", exc_info=True)
        raise

    server = ProxyServer()
    shutdown = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows event loops; KeyboardInterrupt still ends asyncio.run
            logger.debug("Signal handler unavailable", signal=sig.name)

    try:
        await server.start(port)
        logger.info(f"Base URL: http://127.0.0.1:{server.current_port}")
        await shutdown.wait()
    finally:
        logger.info("Shutting down AI proxy gateway")
        await server.close()
        await close_db()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="aiproxy",
        description="Local OpenAI-compatible gateway for configured upstream models"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"preferred listen port (default: {settings.port})"
    )
    args = parser.parse_args(argv)

    try:
        asyncio.run(serve(args.port))
    except ServerStartError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
