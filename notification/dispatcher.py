"""
Shortlist lifecycle notifier.

Decides who hears about a transition, records the email once per
(request, event) and stages a delivery job on the unit of work's outbox.
Jobs leave the process only after the transition has committed, so a
failing mail server can never block or undo a transition.
"""

import logging
from typing import Any, Dict, List, Optional

from core.actors import Actor
from core.config_loader import NotificationConfig
from core.enums import ShortlistEmailEvent
from core.errors import NotFoundError
from core.utils import mask_email, utcnow
from database.models import ShortlistEmail, ShortlistRequest
from notification.message_builder import NotificationMessageBuilder

logger = logging.getLogger(__name__)


class ShortlistNotifier:
    def __init__(
        self,
        emails,
        companies,
        outbox: List[Dict[str, Any]],
        config: Optional[NotificationConfig] = None,
        builder: Optional[NotificationMessageBuilder] = None,
        clock=utcnow
    ):
        """
        Args:
            emails: ShortlistEmailRepository
            companies: CompanyRepository
            outbox: Job list flushed after the unit of work commits
            config: Notification settings
        """
        self.emails = emails
        self.companies = companies
        self.outbox = outbox
        self.config = config or NotificationConfig()
        self.builder = builder or NotificationMessageBuilder()
        self.clock = clock

    def notify(
        self,
        request: ShortlistRequest,
        event: ShortlistEmailEvent,
        actor: Optional[Actor] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> Optional[ShortlistEmail]:
        """
        Stage the lifecycle email for `event`.

        Returns the recorded email row, or None when notifications are off,
        the email already went out, or there is nobody to send it to.
        """
        if not self.config.enabled:
            return None

        if self.emails.has_sent(request.id, event.value):
            logger.info(f"Suppressing duplicate {event.value} email for request {request.id}")
            return None

        return self._stage(request, event, actor, context, is_resend=False)

    def resend_last(self, request: ShortlistRequest, actor: Actor) -> ShortlistEmail:
        """Re-send the most recent lifecycle email of a request."""
        last = self.emails.latest_for_request(request.id)
        if last is None:
            raise NotFoundError(f"No email has been sent for shortlist request {request.id}")

        email = self._stage(request, ShortlistEmailEvent(last.email_event), actor, None, is_resend=True)
        if email is None:
            raise NotFoundError(f"No recipient available for shortlist request {request.id}")
        return email

    def history(self, request: ShortlistRequest) -> List[ShortlistEmail]:
        return self.emails.list_for_request(request.id)

    def _recipient_for(self, request: ShortlistRequest, event: ShortlistEmailEvent) -> tuple:
        company = self.companies.get(request.company_id)
        company_name = company.name if company is not None else None
        if event.is_operator_facing:
            return self.config.operator_email, company_name
        return (company.contact_email if company is not None else None), company_name

    def _stage(
        self,
        request: ShortlistRequest,
        event: ShortlistEmailEvent,
        actor: Optional[Actor],
        context: Optional[Dict[str, Any]],
        is_resend: bool
    ) -> Optional[ShortlistEmail]:
        recipient, company_name = self._recipient_for(request, event)
        if not recipient:
            logger.warning(f"No recipient for {event.value} email on request {request.id}")
            return None

        content = self.builder.build_content(
            request, company_name=company_name, base_url=self.config.base_url, extra=context
        )
        message = self.builder.render(event, content)

        email = self.emails.record(ShortlistEmail(
            shortlist_request_id=request.id,
            email_event=event.value,
            sent_to=recipient,
            sent_by=actor.actor_id if actor is not None else None,
            is_resend=is_resend,
            subject=message.subject,
            delivery_status='queued',
            sent_at=self.clock(),
        ))

        self.outbox.append({
            'email_id': str(email.id),
            'channel_type': self.config.channel,
            'recipient': recipient,
            'subject': message.subject,
            'body': message.body,
            'email_event': event.value,
            'shortlist_request_id': str(request.id),
            'metadata': {
                'action_url': content.action_url,
                'is_resend': is_resend,
                'email_event': event.value,
                'shortlist_request_id': str(request.id),
            },
        })
        logger.info(
            f"Staged {event.value} email for request {request.id} to {mask_email(recipient)}"
            + (" (resend)" if is_resend else "")
        )
        return email
