#!/usr/bin/env python3
"""
Notification Channels

Delivery mechanisms for shortlist lifecycle messages. Every channel
implements the same interface so the dispatcher can pick one by name.

Usage:
    from notification.channels import NotificationChannelFactory

    channel = NotificationChannelFactory.get_channel('email')
    channel.send(recipient, subject, body, metadata)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, NamedTuple, Optional
import html
import logging
import os
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from core.utils import mask_email

logger = logging.getLogger(__name__)

REQUIRED_SMTP_VARS = ('SMTP_SERVER', 'SMTP_PORT', 'SMTP_USERNAME', 'SMTP_PASSWORD')


class NotificationDeliveryError(Exception):
    """Raised by the worker task so the queue retries the job."""
    pass


def _is_dry_run_mode() -> bool:
    """Check if notification channels should run in dry-run (log-only) mode."""
    return os.environ.get('NOTIFICATION_DRY_RUN', '').lower() in ('true', '1', 'yes')


class NotificationChannel(ABC):
    """Abstract base class for all notification channels."""

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return the channel type identifier."""
        pass

    @abstractmethod
    def send(self, recipient: str, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        """
        Send a notification through this channel.

        Args:
            recipient: Target recipient (format depends on channel)
            subject: Notification subject/title
            body: Plain-text notification body
            metadata: Additional channel-specific metadata

        Returns:
            True if sent successfully, False otherwise
        """
        pass

    def validate_config(self) -> bool:
        return True


class SmtpSettings(NamedTuple):
    server: str
    port: int
    username: str
    password: str
    from_email: str
    reply_to: Optional[str]

    @classmethod
    def from_env(cls) -> Optional['SmtpSettings']:
        """Read SMTP settings from the environment; None when incomplete."""
        env = {var: os.environ.get(var) for var in REQUIRED_SMTP_VARS}
        if not all(env.values()):
            return None
        return cls(
            server=env['SMTP_SERVER'],
            port=int(env['SMTP_PORT']),
            username=env['SMTP_USERNAME'],
            password=env['SMTP_PASSWORD'],
            from_email=os.environ.get('FROM_EMAIL') or 'noreply@shortlist-broker.app',
            reply_to=os.environ.get('REPLY_TO_EMAIL') or None,
        )


class EmailChannel(NotificationChannel):
    """
    Email notification channel via SMTP.

    Sends a plain-text part and an HTML part with a link back to the
    shortlist. The request id and lifecycle event travel as X-Shortlist-*
    headers so support can trace a message back to the audit log.
    """

    @property
    def channel_type(self) -> str:
        return 'email'

    def validate_config(self) -> bool:
        return SmtpSettings.from_env() is not None

    def send(self, recipient: str, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        if _is_dry_run_mode():
            logger.info(f"[DRY RUN] Email to {mask_email(recipient)}: {subject}")
            return True

        settings = SmtpSettings.from_env()
        if settings is None:
            logger.error("Email not configured - SMTP environment variables not set")
            return False

        msg = self._build_message(settings, recipient, subject, body, metadata)
        try:
            with smtplib.SMTP(settings.server, settings.port) as server:
                server.starttls()
                server.login(settings.username, settings.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {mask_email(recipient)}: {e}")
            return False

        logger.info(f"Email sent to {mask_email(recipient)} ({metadata.get('email_event', 'message')})")
        return True

    def _build_message(
        self,
        settings: SmtpSettings,
        recipient: str,
        subject: str,
        body: str,
        metadata: Dict[str, Any]
    ) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['From'] = settings.from_email
        msg['To'] = recipient
        msg['Subject'] = subject
        if settings.reply_to:
            msg['Reply-To'] = settings.reply_to
        if metadata.get('shortlist_request_id'):
            msg['X-Shortlist-Request'] = str(metadata['shortlist_request_id'])
        if metadata.get('email_event'):
            msg['X-Shortlist-Event'] = str(metadata['email_event'])
        msg.attach(MIMEText(body, 'plain', 'utf-8'))
        msg.attach(MIMEText(self._build_html_body(subject, body, metadata), 'html', 'utf-8'))
        return msg

    def _build_html_body(self, subject: str, body: str, metadata: Dict[str, Any]) -> str:
        paragraphs = "".join(
            f"<p>{html.escape(block).replace(chr(10), '<br>')}</p>"
            for block in body.split("\n\n") if block.strip()
        )
        action_url = metadata.get('action_url')
        action = ""
        if action_url:
            action = (
                f'<p><a href="{html.escape(action_url, quote=True)}" '
                f'style="background:#2563eb;color:#fff;padding:10px 16px;border-radius:4px;'
                f'text-decoration:none;">View shortlist</a></p>'
            )
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    </style>
</head>
<body>
    <div class="container">
        <h2>{html.escape(subject)}</h2>
        {paragraphs}
        {action}
    </div>
</body>
</html>"""


class LogChannel(NotificationChannel):
    """Writes notifications to the application log (local development)."""

    @property
    def channel_type(self) -> str:
        return 'log'

    def send(self, recipient: str, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        logger.info(f"[NOTIFICATION] To: {mask_email(recipient)}, Subject: {subject}")
        return True


class NotificationChannelFactory:
    """
    Factory for creating notification channels.

    New channels are added with register_channel() without touching the
    dispatcher.
    """

    _channels: Dict[str, type] = {
        'email': EmailChannel,
        'log': LogChannel,
    }

    @classmethod
    def get_channel(cls, channel_type: str) -> NotificationChannel:
        """
        Get a notification channel instance by type.

        Raises:
            ValueError: If channel type is not registered
        """
        channel_class = cls._channels.get(channel_type.lower())
        if not channel_class:
            raise ValueError(f"Unknown channel type: {channel_type}. "
                             f"Available: {', '.join(cls._channels.keys())}")
        return channel_class()

    @classmethod
    def register_channel(cls, channel_type: str, channel_class: type):
        if not issubclass(channel_class, NotificationChannel):
            raise ValueError("Channel class must extend NotificationChannel")

        cls._channels[channel_type.lower()] = channel_class
        logger.info(f"Registered new channel type: {channel_type}")

    @classmethod
    def list_channels(cls) -> list:
        return list(cls._channels.keys())
