"""Rotating log demo — generates application logs through a self-rotating file sink."""

import logging
import os
import random
import signal
import sys
import time

from rotating_log.config import load_config, load_yaml_config
from rotating_log.handler import RotatingFileHandler, RotatingSink
from rotating_log.inspector import list_log_files

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [rotating-log] %(levelname)s %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_running = True


def _signal_handler(sig, _frame):
    global _running
    logger.info("Shutdown signal received (signal %d), stopping...", sig)
    _running = False


LEVELS = [logging.INFO, logging.INFO, logging.INFO, logging.INFO,
          logging.DEBUG, logging.WARNING, logging.ERROR]
SERVICES = ["auth-api", "order-svc", "payment-gw", "user-svc", "catalog-api"]
MESSAGES = {
    logging.INFO: [
        "Request processed successfully",
        "Health check passed",
        "Cache hit for user session",
        "Database query completed in 12ms",
    ],
    logging.DEBUG: [
        "Entering request handler",
        "Token validation started",
    ],
    logging.WARNING: [
        "Slow query detected (>500ms)",
        "Connection pool nearing capacity",
    ],
    logging.ERROR: [
        "Failed to connect to database",
        "Timeout waiting for upstream response",
    ],
}
REPORT_EVERY = 200


def _emit(app_logger: logging.Logger, level: int, service: str, message: str):
    if level < logging.ERROR:
        app_logger.log(level, "[%s] %s", service, message)
        return
    try:
        raise ConnectionError(message)
    except ConnectionError:
        app_logger.exception("[%s] %s", service, message)


def main():
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    config = load_config(load_yaml_config(os.environ.get("CONFIG_PATH")))
    logger.info("Starting rotating log demo")
    logger.info(
        "Config: path=%s, rule=%s, max_size=%d bytes, time_rate=%s, max_files=%d",
        config.log_path, config.rule, config.max_size, config.time_rate, config.max_files,
    )

    sink = RotatingSink.from_config(config)
    app_logger = logging.getLogger("demo")
    app_logger.setLevel(logging.DEBUG)
    app_logger.propagate = False
    app_logger.addHandler(RotatingFileHandler(sink))

    entries_written = 0
    try:
        while _running:
            level = random.choice(LEVELS)
            service = random.choice(SERVICES)
            _emit(app_logger, level, service, random.choice(MESSAGES[level]))
            entries_written += 1
            if entries_written % REPORT_EVERY == 0:
                files = list_log_files(config)
                logger.info("%d entries written, %d archive(s) on disk",
                            entries_written, max(len(files) - 1, 0))
            time.sleep(0.05)
    except KeyboardInterrupt:
        pass

    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()
    logger.info("Shut down cleanly. Total entries written: %d", entries_written)


if __name__ == "__main__":
    main()
