"""Email integration utilities for sending notification emails."""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, List
import logging

from core.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the SMTP server rejects or cannot accept a message."""
    pass


class EmailService:
    """Email service for sending emails via SMTP."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        self.smtp_host = smtp_host or settings.smtp_host
        self.smtp_port = smtp_port or settings.smtp_port
        self.smtp_user = smtp_user or settings.smtp_user
        self.smtp_password = smtp_password or settings.smtp_password
        self.from_email = from_email or settings.from_email
        self.from_name = from_name or settings.from_name

    def send_email(
        self,
        to_email: str | List[str],
        subject: str,
        body: str,
        html: bool = True,
        reply_to: Optional[str] = None,
    ) -> None:
        """
        Send an email.

        Args:
            to_email: Recipient email address(es)
            subject: Email subject
            body: Email body
            html: Whether body is HTML
            reply_to: Reply-to email address

        Raises:
            EmailDeliveryError: If the message could not be handed to the SMTP server
        """
        recipients = to_email if isinstance(to_email, list) else [to_email]

        msg = MIMEMultipart()
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = ", ".join(recipients)
        msg['Subject'] = subject
        if reply_to:
            msg['Reply-To'] = reply_to
        msg.attach(MIMEText(body, 'html' if html else 'plain'))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls()
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg, from_addr=self.from_email, to_addrs=recipients)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send email to {len(recipients)} recipient(s): {e}") from e

        logger.info(f"Email '{subject}' sent to {len(recipients)} recipient(s)")


def _format_money(cents: int) -> str:
    return f"${cents / 100:,.2f}"


# Pre-configured email templates
class EmailTemplates:
    """Notification templates keyed by domain event."""

    @staticmethod
    def placement_created(recruiter_name: str, candidate_name: str, job_title: str,
                          recruiter_share_amount: int) -> dict:
        return {
            'subject': f'Placement confirmed: {candidate_name}',
            'body': f"""
                <html>
                <body>
                    <h2>Congratulations {recruiter_name}!</h2>
                    <p>{candidate_name} has been hired for <strong>{job_title}</strong>.</p>
                    <p>Your share of the placement fee: {_format_money(recruiter_share_amount)}</p>
                    <p><a href="{settings.portal_url}/placements">View placement</a></p>
                </body>
                </html>
            """,
        }

    @staticmethod
    def application_created(recruiter_name: str, candidate_name: str, job_title: str) -> dict:
        return {
            'subject': f'New application: {candidate_name} for {job_title}',
            'body': f"""
                <html>
                <body>
                    <h2>Hi {recruiter_name},</h2>
                    <p>{candidate_name} was submitted for <strong>{job_title}</strong>.</p>
                </body>
                </html>
            """,
        }

    @staticmethod
    def application_stage_changed(recruiter_name: str, candidate_name: str, job_title: str,
                                  old_stage: str, new_stage: str) -> dict:
        return {
            'subject': f'Application update: {candidate_name}',
            'body': f"""
                <html>
                <body>
                    <h2>Hi {recruiter_name},</h2>
                    <p>{candidate_name}'s application for <strong>{job_title}</strong>
                    moved from {old_stage} to {new_stage}.</p>
                </body>
                </html>
            """,
        }

    @staticmethod
    def proposal_created(recruiter_name: str, candidate_name: str, job_title: str,
                         response_due_at: str) -> dict:
        return {
            'subject': f'New proposal: {candidate_name} for {job_title}',
            'body': f"""
                <html>
                <body>
                    <h2>Hi {recruiter_name},</h2>
                    <p>You have been proposed to represent {candidate_name} for
                    <strong>{job_title}</strong>.</p>
                    <p>Please respond by {response_due_at}.</p>
                    <p><a href="{settings.portal_url}/proposals">Review proposal</a></p>
                </body>
                </html>
            """,
        }

    @staticmethod
    def proposal_resolved(recruiter_name: str, candidate_name: str, job_title: str,
                          outcome: str) -> dict:
        return {
            'subject': f'Proposal {outcome}: {candidate_name}',
            'body': f"""
                <html>
                <body>
                    <h2>Hi {recruiter_name},</h2>
                    <p>The proposal for {candidate_name} on <strong>{job_title}</strong>
                    was {outcome}.</p>
                </body>
                </html>
            """,
        }

    @staticmethod
    def payout_status(recruiter_name: str, amount: int, status: str,
                      failure_reason: Optional[str] = None) -> dict:
        detail = f"<p>Reason: {failure_reason}</p>" if failure_reason else ""
        return {
            'subject': f'Payout {status}: {_format_money(amount)}',
            'body': f"""
                <html>
                <body>
                    <h2>Hi {recruiter_name},</h2>
                    <p>Your payout of {_format_money(amount)} is {status}.</p>
                    {detail}
                </body>
                </html>
            """,
        }
