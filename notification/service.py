#!/usr/bin/env python3
"""
Notification delivery service.

Takes jobs staged by ShortlistNotifier (after their unit of work has
committed) and delivers them through a notification channel, either via
the Redis queue or inline in sync mode.

Usage:
    from notification.service import NotificationService

    service = NotificationService(config.notifications)
    service.dispatch(job)
"""

import os
import uuid
import logging
from typing import Any, Dict, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry

from core.config_loader import NotificationConfig
from core.utils import utcnow
from database.database import db_session_scope
from database.models import ShortlistEmail
from notification.channels import NotificationChannelFactory, NotificationDeliveryError

logger = logging.getLogger(__name__)

QUEUE_NAME = 'notifications'


class NotificationService:
    """
    Bounded, retrying delivery of lifecycle emails.

    The queue is capped at max_queue_length; jobs beyond it are dropped
    and marked as such on their email row instead of blocking the caller.
    """

    def __init__(self, config: Optional[NotificationConfig] = None, session_factory=None):
        self.config = config or NotificationConfig()
        self.session_factory = session_factory
        self.redis_url = self.config.redis_url or os.environ.get('REDIS_URL', 'redis://localhost:6379/0')

        if not self.config.use_async_queue:
            logger.info("Async queue disabled via config. Using sync mode.")
            self.redis_conn = None
            self.queue = None
            self.async_mode = False
        else:
            try:
                self.redis_conn = Redis.from_url(self.redis_url)
                # Validate connection with ping before using
                self.redis_conn.ping()
                self.queue = Queue(QUEUE_NAME, connection=self.redis_conn)
                self.async_mode = True
                logger.info("Notification service connected to Redis")
            except RedisError as e:
                logger.error(f"Redis connection failed: {e}. Falling back to sync mode.")
                self.redis_conn = None
                self.queue = None
                self.async_mode = False

    def retry_policy(self) -> Retry:
        intervals = list(self.config.retry_intervals)
        return Retry(max=len(intervals), interval=intervals)

    def dispatch(self, job: Dict[str, Any]) -> Optional[str]:
        """
        Queue or deliver one staged job.

        Returns the RQ job id, the email id in sync mode, or None when the
        job was dropped or failed inline.
        """
        if self.async_mode:
            try:
                if len(self.queue) >= self.config.max_queue_length:
                    logger.error(
                        f"Notification queue full ({self.config.max_queue_length}); "
                        f"dropping {job.get('email_event')} for request {job.get('shortlist_request_id')}"
                    )
                    self._mark(job.get('email_id'), 'dropped', "notification queue full")
                    return None

                queued = self.queue.enqueue(
                    process_notification_task,
                    job,
                    job_timeout=self.config.job_timeout,
                    result_ttl=86400,
                    retry=self.retry_policy(),
                )
                logger.info(f"Queued notification as job {queued.id}")
                return queued.id
            except RedisError as e:
                logger.error(f"Failed to enqueue notification: {e}. Delivering inline.")

        try:
            return process_notification_task(job, session_factory=self.session_factory)
        except NotificationDeliveryError as e:
            logger.error(f"Inline notification delivery failed: {e}")
            return None

    def get_queue_status(self) -> Dict[str, Any]:
        if not self.async_mode:
            return {'status': 'sync_mode', 'queue_length': 0}

        try:
            return {
                'status': 'active',
                'queue_length': len(self.queue),
                'max_queue_length': self.config.max_queue_length,
                'redis_connected': self.redis_conn.ping(),
            }
        except RedisError as e:
            return {'status': 'error', 'error': str(e)}

    def _mark(self, email_id: Optional[str], status: str, error: Optional[str]) -> None:
        _record_delivery(email_id, status, error, self.session_factory)


def _record_delivery(email_id: Optional[str], status: str, error: Optional[str], session_factory=None) -> None:
    if not email_id:
        return
    with db_session_scope(session_factory) as session:
        email = session.get(ShortlistEmail, _as_uuid(email_id))
        if email is None:
            logger.warning(f"Email record {email_id} not found; delivery status '{status}' not stored")
            return
        email.delivery_status = status
        email.delivery_error = error
        if status == 'sent':
            email.delivered_at = utcnow()


def _as_uuid(value):
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


# Worker task - must be at module level for RQ
def process_notification_task(job: Dict[str, Any], session_factory=None) -> str:
    """
    Deliver one notification (called by the RQ worker or inline).

    Raises NotificationDeliveryError when the channel reports failure so
    RQ retries the job with the configured backoff.
    """
    email_id = job.get('email_id')
    channel_type = job['channel_type']
    logger.info(f"Processing {job.get('email_event')} notification {email_id} via {channel_type}")

    channel = NotificationChannelFactory.get_channel(channel_type)
    success = channel.send(job['recipient'], job['subject'], job['body'], job.get('metadata') or {})

    if success:
        _record_delivery(email_id, 'sent', None, session_factory)
        logger.info(f"Notification {email_id} sent successfully")
        return email_id

    _record_delivery(email_id, 'failed', f"{channel_type} channel reported failure", session_factory)
    raise NotificationDeliveryError(f"Notification {email_id} failed to send via {channel_type}")
