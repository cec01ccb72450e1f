"""Proposal deadline tasks."""

import logging

from workers.celery_app import celery_app
from workers.runtime import run_with_session
from api.services.proposals import expire_overdue_proposals as expire_overdue

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.proposals.expire_overdue_proposals")
def expire_overdue_proposals() -> dict:
    """Time out proposals whose response deadline has passed."""
    timed_out = run_with_session(expire_overdue)
    return {"timed_out": timed_out}
