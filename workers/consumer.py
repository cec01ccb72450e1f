"""
Notification consumer.

Consumes domain events from the notification queue bound to the event topic
exchange and queues recruiter emails for them. Messages are acked once the
email is queued and rejected without requeue when handling fails.
"""

import logging
from typing import Any, Callable, Optional
from uuid import UUID

from kombu import Connection, Exchange, Queue, binding
from kombu.mixins import ConsumerMixin
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.events import DomainEvent
from core.integrations.email import EmailTemplates
from core.middleware.logging import setup_logging
from database.models.candidates import Candidate
from database.models.identity import User
from database.models.jobs import Job
from database.models.network import Recruiter
from workers.runtime import run_with_session
from workers.tasks.emails import send_email

logger = logging.getLogger(__name__)

NOTIFICATION_ROUTING_KEYS = (
    "application_created",
    "application_stage_changed",
    "placement_created",
    "proposal_created",
    "proposal_accepted",
    "proposal_declined",
    "proposal_timed_out",
    "payout_completed",
    "payout_failed",
)

PROPOSAL_OUTCOMES = {
    "proposal_accepted": "accepted",
    "proposal_declined": "declined",
    "proposal_timed_out": "timed out",
}


async def load_notification_context(db: AsyncSession, payload: dict[str, Any]) -> dict[str, Any]:
    """Resolve the recruiter, candidate and job an event payload refers to."""
    context: dict[str, Any] = {
        "recruiter_email": None,
        "recruiter_name": "there",
        "candidate_name": "your candidate",
        "job_title": "the role",
    }

    if payload.get("recruiter_id"):
        recruiter = await db.get(Recruiter, UUID(str(payload["recruiter_id"])))
        if recruiter:
            user = await db.get(User, recruiter.user_id)
            if user:
                context["recruiter_email"] = user.email
                context["recruiter_name"] = user.name
    if payload.get("candidate_id"):
        candidate = await db.get(Candidate, UUID(str(payload["candidate_id"])))
        if candidate:
            context["candidate_name"] = candidate.full_name
    if payload.get("job_id"):
        job = await db.get(Job, UUID(str(payload["job_id"])))
        if job:
            context["job_title"] = job.title

    return context


def render_notification(routing_key: str, payload: dict[str, Any], context: dict[str, Any]) -> Optional[dict]:
    """Email subject and body for an event, or None if it has no notification."""
    names = (context["recruiter_name"], context["candidate_name"], context["job_title"])

    if routing_key == "application_created":
        return EmailTemplates.application_created(*names)
    if routing_key == "application_stage_changed":
        return EmailTemplates.application_stage_changed(
            *names, payload.get("old_stage", ""), payload.get("new_stage", "")
        )
    if routing_key == "placement_created":
        return EmailTemplates.placement_created(*names, payload.get("recruiter_share_amount", 0))
    if routing_key == "proposal_created":
        return EmailTemplates.proposal_created(*names, payload.get("response_due_at", ""))
    if routing_key in PROPOSAL_OUTCOMES:
        return EmailTemplates.proposal_resolved(*names, PROPOSAL_OUTCOMES[routing_key])
    if routing_key in ("payout_completed", "payout_failed"):
        return EmailTemplates.payout_status(
            context["recruiter_name"],
            payload.get("payout_amount", 0),
            payload.get("status", routing_key.split("_", 1)[1]),
            payload.get("failure_reason"),
        )
    return None


def _load_context(payload: dict[str, Any]) -> dict[str, Any]:
    return run_with_session(load_notification_context, payload)


class NotificationConsumer(ConsumerMixin):
    """Turns domain events into queued recruiter emails."""

    def __init__(
        self,
        connection: Connection,
        context_loader: Callable[[dict[str, Any]], dict[str, Any]] = _load_context,
        exchange_name: Optional[str] = None,
        queue_name: Optional[str] = None,
    ):
        self.connection = connection
        self.context_loader = context_loader
        self.exchange = Exchange(
            exchange_name or settings.event_exchange, type="topic", durable=True
        )
        self.queue = Queue(
            queue_name or settings.notification_queue,
            bindings=[
                binding(self.exchange, routing_key=key) for key in NOTIFICATION_ROUTING_KEYS
            ],
            durable=True,
        )

    def get_consumers(self, Consumer, channel):
        return [
            Consumer(
                queues=[self.queue],
                callbacks=[self.on_message],
                accept=["json"],
                prefetch_count=10,
            )
        ]

    def on_message(self, body: dict[str, Any], message) -> None:
        try:
            self.handle(DomainEvent.model_validate(body))
        except Exception as e:
            logger.error(f"Failed to handle event message: {e}", exc_info=True)
            message.reject(requeue=False)
            return
        message.ack()

    def handle(self, event: DomainEvent) -> bool:
        """
        Queue the email for an event.

        Returns:
            True if an email was queued
        """
        if event.routing_key not in NOTIFICATION_ROUTING_KEYS:
            logger.debug(f"No notification for {event.event_type}")
            return False

        context = self.context_loader(event.payload)
        if not context.get("recruiter_email"):
            logger.info(f"Event {event.event_id} has no recruiter to notify")
            return False

        rendered = render_notification(event.routing_key, event.payload, context)
        if rendered is None:
            return False

        send_email.delay(
            to=context["recruiter_email"],
            subject=rendered["subject"],
            body=rendered["body"],
        )
        logger.info(f"Queued {event.event_type} notification for event {event.event_id}")
        return True


def main() -> None:
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    with Connection(settings.event_broker_url) as connection:
        NotificationConsumer(connection).run()


if __name__ == "__main__":
    main()
