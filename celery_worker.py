#!/usr/bin/env python3
"""
Celery worker script for the merchant storefront API.
Runs the worker that applies billing events, with the embedded beat
scheduler for the expired-plan sweep.
"""

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.log import configure_logging

    configure_logging()

    celery_app.start([
        "worker",
        "--beat",
        "--loglevel=info",
        "--concurrency=4",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])
