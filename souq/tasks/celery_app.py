"""
Celery Application Configuration
Background sealing and verification of the marketplace ledger.
"""

import logging

from celery import Celery
from celery.schedules import crontab

from ..config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = Celery(
    "souq",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["souq.tasks.ledger"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Redelivered if the worker dies mid-seal; the store ignores repeated blocks
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Proof of work at difficulty 6 can take minutes
    task_soft_time_limit=5 * 60,
    task_time_limit=6 * 60,
    worker_prefetch_multiplier=1,
    result_expires=24 * 60 * 60,
)

# The API process seals its own pending pool (Marketplace.start); workers seal
# batches handed to tasks.seal_pending_block and verify the stored chain
app.conf.beat_schedule = {
    "verify-ledger-hourly": {
        "task": "tasks.verify_ledger",
        "schedule": crontab(minute=0),
    },
}

if __name__ == "__main__":
    app.start()
