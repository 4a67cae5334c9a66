"""
Classworks settings service entry point.

Wires configuration, logging, storage and the settings manager together, runs the
startup storage sequence and serves the settings API with Hypercorn.
"""
import argparse
import asyncio
import logging
import signal

from hypercorn.asyncio import serve
from hypercorn.config import Config

from config import DEBUG, SERVER, STORAGE
from logging_config import get_logger, setup_logging
from server import create_app
from settings import SettingsManager
from startup import initialize_storage
from storage import JsonFileStorage

logger = get_logger(__name__)


def create_settings_manager() -> SettingsManager:
    """Build the process-wide settings manager on the configured settings file."""
    storage = JsonFileStorage(
        STORAGE["settings_file"],
        watch_interval=STORAGE["watch_interval"],
        auto_watch=STORAGE["watch_enabled"],
    )
    manager = SettingsManager(storage)
    manager.initialize()
    logger.info(f"Settings loaded from {STORAGE['settings_file']}")
    return manager


async def run_server(manager: SettingsManager, host: str, port: int) -> None:
    config = Config()
    config.bind = [f"{host}:{port}"]
    config.use_reloader = False
    config.graceful_timeout = 2
    config.debug = False

    # Mute unnecessary logging
    logging.getLogger('hypercorn.error').setLevel(logging.ERROR)
    logging.getLogger('hypercorn.access').setLevel(logging.ERROR)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers
            pass

    logger.info(f"Serving settings API on http://{host}:{port}")
    await serve(create_app(manager), config, shutdown_trigger=shutdown_event.wait)


async def main(args: argparse.Namespace) -> None:
    manager = create_settings_manager()
    stop_watching = manager.watch(
        lambda _settings: logger.info("Settings changed by another process, cache refreshed")
    )

    try:
        # A headless service has no permission host
        await initialize_storage(manager, None)
        if not args.no_server:
            await run_server(manager, args.host, args.port)
    finally:
        stop_watching()
        if manager.storage is not None:
            manager.storage.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Classworks settings service')
    parser.add_argument('--host', default=SERVER["host"], help='Bind address')
    parser.add_argument('--port', type=int, default=SERVER["port"], help='Bind port')
    parser.add_argument('--no-server', action='store_true',
                        help='Load settings and run the startup sequence without serving the API')
    args = parser.parse_args()

    setup_logging(
        console_level=DEBUG.get("log_level", "INFO"),
        file_level="DEBUG" if DEBUG.get("log_detailed", False) else "INFO",
        console=DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "classworks.log"),
        log_changes=DEBUG.get("log_changes", True)
    )

    try:
        asyncio.run(main(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
