"""
Notification Module

Lifecycle emails for shortlist requests: staged during a transition,
delivered after it commits through a pluggable channel, asynchronously
via RQ when Redis is available.

Usage:
    from notification import ShortlistNotifier, NotificationService

    notifier = ShortlistNotifier(repo.emails, repo.companies, repo.outbox, config)
    notifier.notify(request, ShortlistEmailEvent.PRICING_READY, actor)

    # after commit
    service = NotificationService(config)
    for job in repo.outbox:
        service.dispatch(job)
"""

from notification.channels import (
    NotificationChannel,
    EmailChannel,
    LogChannel,
    NotificationChannelFactory,
    NotificationDeliveryError,
)

from notification.message_builder import (
    NotificationMessageBuilder,
    ShortlistNotificationContent,
    RenderedMessage,
)

from notification.dispatcher import ShortlistNotifier

from notification.service import (
    NotificationService,
    process_notification_task,
)

__all__ = [
    # Channels
    'NotificationChannel',
    'EmailChannel',
    'LogChannel',
    'NotificationChannelFactory',
    'NotificationDeliveryError',
    # Messages
    'NotificationMessageBuilder',
    'ShortlistNotificationContent',
    'RenderedMessage',
    # Dispatch
    'ShortlistNotifier',
    'NotificationService',
    'process_notification_task',
]
