#!/usr/bin/env python3
"""
Starts the Celery worker that delivers the bakery's order emails.

Usage: python celery_worker.py [concurrency]
"""

import sys

from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.config import settings
    from core.log import configure_logging

    configure_logging()

    concurrency = sys.argv[1] if len(sys.argv) > 1 else "2"
    celery_app.start([
        "worker",
        f"--loglevel={settings.LOG_LEVEL.lower()}",
        f"--concurrency={concurrency}",
        "--queues=bakery-email",
        "--without-gossip",
        "--without-mingle",
    ])
