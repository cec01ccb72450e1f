"""Email sending tasks."""

import logging

from celery import Task

from workers.celery_app import celery_app
from core.integrations.email import EmailService, EmailDeliveryError

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.emails.send_email", bind=True)
def send_email(
    self: Task,
    to: str,
    subject: str,
    body: str,
    html: bool = True,
) -> dict:
    """Send email via configured email service.

    Delivery failures are retried with exponential backoff.

    Args:
        to: Recipient email address
        subject: Email subject
        body: Email body
        html: Whether the body is HTML

    Returns:
        Dictionary with send status
    """
    try:
        EmailService().send_email(to_email=to, subject=subject, body=body, html=html)
    except EmailDeliveryError as e:
        logger.warning(f"Email '{subject}' not delivered, retrying: {e}")
        raise self.retry(exc=e, countdown=60 * 2 ** self.request.retries, max_retries=5)

    return {"status": "sent", "subject": subject}
