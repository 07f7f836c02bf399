"""
Standalone job server process.

Runs the JobServer without the HTTP host, for deployments that scale
workers separately (AppSettings.RunWorkerInProcess = false on the API).
"""

import asyncio
import logging
import signal

from pinger.bootstrap import build_context, setup_observability
from pinger.config import get_settings

logger = logging.getLogger(__name__)


async def run_async() -> None:
    """Run the job server until SIGTERM or SIGINT."""
    settings = get_settings()
    setup_observability(settings)

    context = build_context(settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        await context.prepare()
        await context.server.start()
        await stop.wait()
    finally:
        await context.server.stop()
        await context.close()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
