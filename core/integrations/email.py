"""Email integration for candidate and interviewer notifications."""

import asyncio
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, List
import logging

from core.config import settings

logger = logging.getLogger(__name__)


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
        enabled: Optional[bool] = None,
    ):
        self.smtp_host = smtp_host or settings.smtp_host
        self.smtp_port = smtp_port or settings.smtp_port
        self.smtp_user = smtp_user or settings.smtp_user
        self.smtp_password = smtp_password or settings.smtp_password
        self.from_email = from_email or settings.from_email
        self.from_name = from_name or settings.from_name
        self.enabled = settings.email_enabled if enabled is None else enabled

    def send_email(
        self,
        to_email: str | List[str],
        subject: str,
        body: str,
        html: bool = False,
        reply_to: Optional[str] = None,
    ) -> bool:
        """
        Send an email.

        Args:
            to_email: Recipient email address(es)
            subject: Email subject
            body: Email body
            html: Whether body is HTML
            reply_to: Reply-to email address

        Returns:
            True if email sent successfully
        """
        if not self.enabled:
            logger.info(f"Email disabled, not sending '{subject}'")
            return False

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
            logger.error(f"Failed to send email '{subject}': {e}")
            return False

        logger.info(f"Email sent: '{subject}' to {len(recipients)} recipient(s)")
        return True

    async def send_email_async(self, *args, **kwargs) -> bool:
        """``send_email`` off the event loop."""
        return await asyncio.to_thread(self.send_email, *args, **kwargs)

    async def send_candidate_invitation(self, candidate: dict, job: dict) -> bool:
        """
        Invite an imported candidate to apply for a job.

        Args:
            candidate: Dict with at least ``name`` and ``email``
            job: Dict with at least ``id`` and ``title``
        """
        template = EmailTemplates.candidate_invitation(
            candidate_name=candidate["name"],
            job_title=job["title"],
            apply_url=f"{settings.app_base_url.rstrip('/')}/jobs/{job['id']}",
            company_name=job.get("company_name"),
        )
        return await self.send_email_async(candidate["email"], **template)

    async def send_interview_invitation(
        self,
        to_email: str | List[str],
        candidate_name: str,
        job_title: str,
        scheduled_at: str,
        duration_minutes: int,
        mode: str,
        meeting_link: Optional[str] = None,
        location: Optional[str] = None,
    ) -> bool:
        template = EmailTemplates.interview_invitation(
            candidate_name=candidate_name,
            position=job_title,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            mode=mode,
            meeting_link=meeting_link,
            location=location,
        )
        return await self.send_email_async(to_email, **template)


class EmailTemplates:
    """Pre-configured email templates."""

    @staticmethod
    def candidate_invitation(
        candidate_name: str,
        job_title: str,
        apply_url: str,
        company_name: Optional[str] = None,
    ) -> dict:
        sender = company_name or "The Hiring Team"
        return {
            'subject': f'Opportunity: {job_title}',
            'body': f"""
                <html>
                <body>
                    <h2>Hi {candidate_name},</h2>
                    <p>We think you'd be a great fit for the <strong>{job_title}</strong> role.</p>
                    <p>View the role and complete your application here:
                       <a href="{apply_url}">{apply_url}</a></p>
                    <p>Best regards,<br>{sender}</p>
                </body>
                </html>
            """,
            'html': True,
        }

    @staticmethod
    def interview_invitation(
        candidate_name: str,
        position: str,
        scheduled_at: str,
        duration_minutes: int,
        mode: str,
        meeting_link: Optional[str] = None,
        location: Optional[str] = None,
    ) -> dict:
        """Interview invitation email template."""
        where = ''
        if meeting_link:
            where = f'<p><strong>Meeting Link:</strong> <a href="{meeting_link}">{meeting_link}</a></p>'
        elif location:
            where = f'<p><strong>Location:</strong> {location}</p>'

        return {
            'subject': f'Interview Scheduled - {position}',
            'body': f"""
                <html>
                <body>
                    <h2>Interview: {candidate_name}</h2>
                    <p>An interview has been scheduled for the {position} position.</p>
                    <p><strong>When:</strong> {scheduled_at} ({duration_minutes} minutes)</p>
                    <p><strong>Mode:</strong> {mode.replace('_', ' ').title()}</p>
                    {where}
                    <p>Best regards,<br>The Hiring Team</p>
                </body>
                </html>
            """,
            'html': True,
        }


# Global email service instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create global email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
