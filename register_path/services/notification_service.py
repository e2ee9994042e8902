"""
Notification service for attendee emails.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr
from typing import Dict, List, Optional, Sequence

from ..config import Settings, get_settings
from ..models.event import Event
from ..models.registration import Registration
from ..models.ticket import Ticket
from ..utils.circuit_breaker import get_email_circuit_breaker
from ..utils.exceptions import NotificationDeliveryError, RegisterPathError

logger = logging.getLogger(__name__)

DATE_FORMAT = "%B %d, %Y at %I:%M %p"


class NotificationSender(ABC):
    """Delivers one email."""

    @abstractmethod
    async def send(self, to_address: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        """Raise NotificationDeliveryError if the message could not be handed off."""
        ...


class ConsoleNotificationSender(NotificationSender):
    """Development sender used when SMTP is not configured; writes the message to the log."""

    async def send(self, to_address: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        logger.info(f"[dev mail] To: {to_address} | Subject: {subject}\n{text_body}")


class SmtpNotificationSender(NotificationSender):
    """Sends mail through the configured SMTP relay."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.breaker = get_email_circuit_breaker()

    async def send(self, to_address: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.settings.mail_from
        msg["To"] = to_address
        msg.attach(MIMEText(text_body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        try:
            await self.breaker.call(asyncio.to_thread, self._deliver, msg)
        except smtplib.SMTPException as e:
            raise NotificationDeliveryError(str(e)) from e
        except OSError as e:
            raise NotificationDeliveryError(f"SMTP connection failed: {e}") from e

    def _deliver(self, msg: MIMEMultipart) -> None:
        settings = self.settings
        with smtplib.SMTP(settings.smtp_server, settings.smtp_port, timeout=settings.notification_timeout_seconds) as server:
            if settings.smtp_use_tls:
                server.starttls()
            server.login(settings.smtp_username, settings.smtp_password)
            server.sendmail(parseaddr(settings.mail_from)[1], [msg["To"]], msg.as_string())


def build_notification_sender(settings: Optional[Settings] = None) -> NotificationSender:
    settings = settings or get_settings()
    if settings.smtp_server and settings.smtp_username and settings.smtp_password:
        return SmtpNotificationSender(settings)
    logger.warning("SMTP is not configured, emails will be written to the log")
    return ConsoleNotificationSender()


class NotificationService:
    """Renders attendee emails and hands them to a sender.

    Delivery failures are logged and reported through the return value;
    they never propagate to the workflow that triggered the email.
    """

    def __init__(self, sender: NotificationSender, settings: Optional[Settings] = None):
        self.sender = sender
        self.settings = settings or get_settings()

    async def send_registration_confirmation(
        self,
        registration: Registration,
        event: Event,
        tickets: Sequence[Ticket],
    ) -> bool:
        """
        Send the confirmation email listing every ticket of the registration.

        Returns:
            bool: True if the email was handed off
        """
        data = self._template_data(registration, event)
        data["tickets"] = [(ticket.ticket_code, ticket.qr_data) for ticket in tickets]

        return await self._send(
            to_address=registration.email,
            subject=f"Register Path Confirmation - {event.title}",
            text_body=self._render_confirmation_text(data),
            html_body=self._render_confirmation_html(data),
            context=f"confirmation for registration {registration.id}",
        )

    async def send_event_reminder(self, registration: Registration, event: Event) -> bool:
        data = self._template_data(registration, event)
        return await self._send(
            to_address=registration.email,
            subject=f"Register Path Reminder - {event.title} Tomorrow",
            text_body=self._render_reminder_text(data),
            html_body=None,
            context=f"reminder for registration {registration.id}",
        )

    async def _send(self, to_address: str, subject: str, text_body: str, html_body: Optional[str], context: str) -> bool:
        try:
            await self.sender.send(to_address, subject, text_body, html_body)
        except RegisterPathError as e:
            logger.error(f"Failed to send {context}: {e.message}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error sending {context}: {e}")
            return False

        logger.info(f"Sent {context}")
        return True

    def _template_data(self, registration: Registration, event: Event) -> Dict:
        return {
            "attendee_name": registration.full_name,
            "event_title": event.title,
            "event_date": event.start_time.strftime(DATE_FORMAT),
            "location": event.location,
            "seats": registration.seats,
            "total_amount": f"${registration.total_amount:.2f}",
            "registration_id": str(registration.id),
        }

    # Email templates

    def _render_confirmation_text(self, data: Dict) -> str:
        ticket_lines: List[str] = [f"  {code}  ({url})" for code, url in data["tickets"]]
        return "\n".join([
            f"Hi {data['attendee_name']},",
            "",
            f"You're registered for {data['event_title']}.",
            "",
            f"When: {data['event_date']}",
            f"Where: {data['location']}",
            f"Seats: {data['seats']}",
            f"Total: {data['total_amount']}",
            "",
            "Your tickets:",
            *ticket_lines,
            "",
            "Show the QR code for each ticket at the entrance.",
            f"Registration ID: {data['registration_id']}",
        ])

    def _render_confirmation_html(self, data: Dict) -> str:
        ticket_items = "".join(
            f'<li><strong>{code}</strong> <a href="{url}">verify</a></li>'
            for code, url in data["tickets"]
        )
        return f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="utf-8"><title>Registration Confirmed</title></head>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <h1>You're registered!</h1>
            <p>Hi {data['attendee_name']},</p>
            <p>Your registration for <strong>{data['event_title']}</strong> is confirmed.</p>
            <p><strong>When:</strong> {data['event_date']}<br>
               <strong>Where:</strong> {data['location']}<br>
               <strong>Seats:</strong> {data['seats']}<br>
               <strong>Total:</strong> {data['total_amount']}</p>
            <h3>Your tickets</h3>
            <ul>{ticket_items}</ul>
            <p>Show the QR code for each ticket at the entrance.</p>
            <p style="color: #666;">Registration ID: {data['registration_id']}</p>
        </body>
        </html>
        """

    def _render_reminder_text(self, data: Dict) -> str:
        return "\n".join([
            f"Hi {data['attendee_name']},",
            "",
            f"This is a reminder that {data['event_title']} starts tomorrow.",
            "",
            f"When: {data['event_date']}",
            f"Where: {data['location']}",
            f"Seats: {data['seats']}",
            "",
            "Bring the tickets from your confirmation email. See you there!",
        ])
