"""Main entry point for the ERP Sync Worker."""

import asyncio
import signal
import sys
from typing import Any, Optional

from logging_utils.config import configure_logging
from pydantic import ValidationError

from .catalog import CatalogClient
from .config import Settings, get_settings
from .exceptions import ConsumerFatalError
from .logger import SERVICE_NAME, logger
from .processor import MessageProcessor
from .resolver import SkuResolver
from .server import create_health_server
from .worker import SyncWorker


def build_worker(settings: Settings, catalog: CatalogClient) -> SyncWorker:
    """Wire the resolver, processor and worker from settings."""
    resolver = SkuResolver(catalog, cache_ttl=settings.SKU_CACHE_TTL_SECONDS)
    processor = MessageProcessor(catalog, resolver=resolver)
    return SyncWorker(
        settings.kafka_consumer_config(),
        processor,
        concurrency=settings.KAFKA_PARTITIONS_CONCURRENCY,
    )


class ServiceSupervisor:
    """Owns the worker task and turns signals and stray faults into a stop."""

    def __init__(self, worker: SyncWorker):
        self.worker = worker
        self.fault: Optional[dict[str, Any]] = None

    def on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, stopping worker...")
        self.worker.request_stop()

    def on_uncaught(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception")
        logger.opt(exception=error).critical(f"Uncaught exception | message={context.get('message')}")
        self.fault = context
        self.worker.request_stop()


async def run_service(settings: Settings) -> int:
    """Run the worker (and health server) until shutdown.

    Returns:
        int: Process exit code, non-zero after a fatal fault
    """
    catalog = CatalogClient(settings.BACKEND_URL, timeout=settings.HTTP_TIMEOUT_SECONDS)
    worker = build_worker(settings, catalog)
    supervisor = ServiceSupervisor(worker)

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(supervisor.on_uncaught)
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, supervisor.on_signal, sig)

    server = create_health_server(worker, settings.HEALTH_PORT) if settings.HEALTH_PORT else None
    server_task = asyncio.create_task(server.serve()) if server else None
    if server:
        logger.info(f"Health server listening | port={settings.HEALTH_PORT}")

    exit_code = 0
    try:
        await worker.run()
    except ConsumerFatalError as e:
        logger.critical(f"ERP sync worker terminated | error={e}")
        exit_code = 1
    finally:
        if server:
            server.should_exit = True
            await server_task
        catalog.close()

    if supervisor.fault is not None:
        exit_code = 1
    return exit_code


def main() -> None:
    try:
        settings = get_settings()
    except ValidationError as e:
        configure_logging(SERVICE_NAME)
        problems = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()]
        logger.critical(f"Invalid configuration | errors={problems}")
        logger.complete()
        sys.exit(1)

    configure_logging(
        SERVICE_NAME,
        log_level=settings.log_level,
        log_file=settings.LOG_FILE,
        json_logs=settings.is_production,
    )
    logger.info(
        f"Starting ERP sync worker | environment={settings.ENVIRONMENT} | broker={settings.KAFKA_BROKER} | "
        f"backend_url={settings.BACKEND_URL}"
    )

    exit_code = asyncio.run(run_service(settings))
    logger.complete()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
