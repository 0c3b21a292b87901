"""
Main application entry point.
"""

import logging
import signal
import sys
import threading

from dotenv import load_dotenv

load_dotenv()

from src.app import AdwatchApp
from src.config import AppConfig, ConfigValidationError, load_config
from src.database.connection import Database

logger = logging.getLogger(__name__)


def run_forever(app: AdwatchApp, stop_event: threading.Event) -> None:
    """Start the scheduler and reconcile it periodically until stopped."""
    app.start()
    interval = app.config.schedule.reconcile_interval_seconds

    try:
        while not stop_event.wait(interval):
            try:
                app.scheduler.reconcile()
            except Exception as e:
                logger.error(f"Reconciliation failed: {e}")
    finally:
        app.stop()


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Adwatch listing watcher service")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--dry-run", action="store_true", help="Run without sending notifications"
    )
    parser.add_argument(
        "--once", action="store_true", help="Run every active watcher once and exit"
    )

    args = parser.parse_args()

    # Load config
    config_missing = False
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        config = AppConfig()
        config_missing = True
    except ConfigValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    log_level = logging.DEBUG if args.debug else config.advanced.log_level.upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if config_missing:
        logger.warning(f"{args.config} not found, using default configuration")

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    app = AdwatchApp(db=db, config=config, dry_run=args.dry_run)

    if args.dry_run:
        logger.info("Dry run mode - no notifications will be sent")

    if args.once:
        outcomes = app.run_all_once()
        logger.info(f"Ran {len(outcomes)} watchers")
        db.close()
        return

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"Signal {signum} received, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        run_forever(app, stop_event)
    except Exception as e:
        logger.critical(f"Failed to start scheduler: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
