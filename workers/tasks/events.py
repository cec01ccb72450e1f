"""Outbox relay tasks."""

import logging

from celery import Task

from workers.celery_app import celery_app
from workers.runtime import run_with_session
from core.config import settings
from core.events import EventPublisher, relay_pending_events

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.events.relay_outbox", bind=True)
def relay_outbox(self: Task, batch_size: int | None = None) -> dict:
    """Publish committed outbox events to the event exchange.

    Args:
        batch_size: Maximum events to publish in one run

    Returns:
        Counts of published, failed and still pending events
    """
    try:
        return run_with_session(
            relay_pending_events,
            EventPublisher(),
            batch_size=batch_size or settings.outbox_batch_size,
        )
    except Exception as e:
        logger.error(f"Outbox relay failed: {e}")
        raise self.retry(exc=e, countdown=30, max_retries=3)


def dispatch_outbox_relay() -> None:
    """Queue an outbox relay right after a commit, without failing the caller."""
    if not settings.outbox_dispatch_on_commit:
        return
    try:
        relay_outbox.delay()
    except Exception as e:
        logger.warning(f"Could not queue outbox relay: {e}")
