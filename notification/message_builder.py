from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel

from core.enums import ShortlistEmailEvent


class ShortlistNotificationContent(BaseModel):
    """Everything a lifecycle message may mention about a request."""
    request_id: str
    role_title: str
    company_name: Optional[str] = None
    proposed_price: Optional[Decimal] = None
    proposed_candidate_count: Optional[int] = None
    candidates_delivered: Optional[int] = None
    scope_notes: Optional[str] = None
    adjustment_suggestion: Optional[str] = None
    search_deadline: Optional[str] = None
    outcome: Optional[str] = None
    outcome_reason: Optional[str] = None
    decline_reason: Optional[str] = None
    action_url: Optional[str] = None


class RenderedMessage(BaseModel):
    subject: str
    body: str


_SUBJECTS = {
    ShortlistEmailEvent.PROCESSING_STARTED: "We've started on your {role} shortlist",
    ShortlistEmailEvent.PRICING_READY: "Your {role} shortlist is ready for review",
    ShortlistEmailEvent.PRICING_APPROVED: "Pricing approved: {role} ({company})",
    ShortlistEmailEvent.PRICING_DECLINED: "Pricing declined: {role} ({company})",
    ShortlistEmailEvent.AUTHORIZATION_REQUIRED: "Authorize payment for your {role} shortlist",
    ShortlistEmailEvent.ADJUSTMENT_SUGGESTED: "A suggestion for your {role} search",
    ShortlistEmailEvent.SEARCH_EXTENDED: "We're extending the search for your {role} shortlist",
    ShortlistEmailEvent.DELIVERED: "Your {role} shortlist has been delivered",
    ShortlistEmailEvent.COMPLETED: "Your {role} shortlist is complete",
    ShortlistEmailEvent.NO_MATCH: "Update on your {role} shortlist",
}


class NotificationMessageBuilder:
    @staticmethod
    def format_price(price: Optional[Decimal]) -> str:
        if price is None:
            return "-"
        return f"${Decimal(price):,.2f}"

    @staticmethod
    def build_content(
        request: Any,
        company_name: Optional[str] = None,
        base_url: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> ShortlistNotificationContent:
        """Build notification content from a ShortlistRequest row."""
        extra = extra or {}
        deadline = getattr(request, 'search_deadline', None)
        action_url = f"{base_url.rstrip('/')}/shortlists/{request.id}" if base_url else None
        return ShortlistNotificationContent(
            request_id=str(request.id),
            role_title=request.role_title or "your role",
            company_name=company_name,
            proposed_price=request.proposed_price,
            proposed_candidate_count=request.proposed_candidate_count,
            candidates_delivered=request.candidates_delivered,
            scope_notes=request.scope_notes,
            adjustment_suggestion=request.adjustment_suggestion,
            search_deadline=deadline.date().isoformat() if deadline else None,
            outcome=request.outcome,
            outcome_reason=request.outcome_reason,
            decline_reason=extra.get('decline_reason'),
            action_url=action_url,
        )

    @staticmethod
    def render(event: ShortlistEmailEvent, content: ShortlistNotificationContent) -> RenderedMessage:
        subject = _SUBJECTS[event].format(role=content.role_title, company=content.company_name or "company")
        lines = [NotificationMessageBuilder._headline(event, content)]

        if event == ShortlistEmailEvent.PRICING_READY:
            lines.append(
                f"Proposed scope: {content.proposed_candidate_count} candidates for "
                f"{NotificationMessageBuilder.format_price(content.proposed_price)}."
            )
            if content.scope_notes:
                lines.append(f"Notes from our team: {content.scope_notes}")
            lines.append("No payment is taken until you approve and authorize.")
        elif event == ShortlistEmailEvent.AUTHORIZATION_REQUIRED:
            lines.append(
                f"Authorize {NotificationMessageBuilder.format_price(content.proposed_price)} to proceed. "
                f"Funds are only captured when the shortlist is delivered."
            )
        elif event in (ShortlistEmailEvent.PRICING_APPROVED, ShortlistEmailEvent.PRICING_DECLINED):
            lines.append(
                f"Scope: {content.proposed_candidate_count} candidates for "
                f"{NotificationMessageBuilder.format_price(content.proposed_price)}."
            )
            if content.decline_reason:
                lines.append(f"Reason given: {content.decline_reason}")
        elif event == ShortlistEmailEvent.ADJUSTMENT_SUGGESTED and content.adjustment_suggestion:
            lines.append(content.adjustment_suggestion)
        elif event == ShortlistEmailEvent.SEARCH_EXTENDED and content.search_deadline:
            lines.append(f"We expect to get back to you by {content.search_deadline}.")
        elif event == ShortlistEmailEvent.DELIVERED and content.candidates_delivered is not None:
            lines.append(f"{content.candidates_delivered} candidate(s) are waiting for you.")
        elif event == ShortlistEmailEvent.NO_MATCH:
            if content.outcome_reason:
                lines.append(content.outcome_reason)
            lines.append("Any payment authorization has been released; you have not been charged.")

        if content.action_url:
            lines.append(f"View it here: {content.action_url}")
        lines.append("---\nShortlist Broker")
        return RenderedMessage(subject=subject, body="\n\n".join(lines))

    @staticmethod
    def _headline(event: ShortlistEmailEvent, content: ShortlistNotificationContent) -> str:
        role = content.role_title
        company = content.company_name or "The company"
        return {
            ShortlistEmailEvent.PROCESSING_STARTED: f"Our team has started curating candidates for {role}.",
            ShortlistEmailEvent.PRICING_READY: f"We've prepared a scope and price for your {role} shortlist.",
            ShortlistEmailEvent.PRICING_APPROVED: f"{company} approved the pricing for {role}.",
            ShortlistEmailEvent.PRICING_DECLINED: f"{company} declined the pricing for {role}.",
            ShortlistEmailEvent.AUTHORIZATION_REQUIRED: f"Thanks for approving the {role} scope.",
            ShortlistEmailEvent.ADJUSTMENT_SUGGESTED: f"We have a suggestion that could improve your {role} results.",
            ShortlistEmailEvent.SEARCH_EXTENDED: f"We're taking a little longer to find the right {role} candidates.",
            ShortlistEmailEvent.DELIVERED: f"Your {role} shortlist has been delivered.",
            ShortlistEmailEvent.COMPLETED: f"Your {role} shortlist is complete and settled.",
            ShortlistEmailEvent.NO_MATCH: f"We couldn't find suitable candidates for {role} this time.",
        }[event]
