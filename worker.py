#!/usr/bin/env python
"""
Outbox Worker

Background process that delivers change events from the event_outbox table
to the Kafka REST proxy. Use it instead of the in-process worker when the
API runs with several replicas.

Run with:
    python worker.py

Or with environment:
    WORKER_POLL_INTERVAL=10 WORKER_BATCH_SIZE=50 python worker.py
"""

import sys
import time
import logging
import signal

from booking_app.config import settings
from booking_app.database import SessionLocal
from booking_app.services.outbox_worker import OutboxProcessor
from booking_app.utils.logging_config import setup_logging

logger = logging.getLogger("worker")

RUNNING = True


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully"""
    global RUNNING
    logger.info("Received shutdown signal, finishing current batch...")
    RUNNING = False


def run_worker():
    """Main worker loop"""
    poll_interval = settings.worker_poll_interval
    batch_size = settings.worker_batch_size

    logger.info("Starting outbox worker")
    logger.info(f"Poll interval: {poll_interval}s, batch size: {batch_size}")
    logger.info(f"Event gateway: {settings.event_gateway_url}")

    cycle = 0
    while RUNNING:
        cycle += 1
        start_time = time.time()

        db = SessionLocal()
        try:
            success, failed = OutboxProcessor(db).process_batch(limit=batch_size)
            if success + failed > 0:
                duration = time.time() - start_time
                logger.info(f"Cycle {cycle}: {success} delivered, {failed} failed, {duration:.2f}s")
        except Exception as e:
            logger.error(f"Critical error in cycle {cycle}: {e}", exc_info=True)
        finally:
            db.close()

        if RUNNING:
            time.sleep(poll_interval)

    logger.info("Worker shutdown complete")


if __name__ == "__main__":
    setup_logging(level=settings.log_level, json_format=settings.log_json, include_uvicorn=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        run_worker()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.critical(f"Worker crashed: {e}")
        sys.exit(1)
