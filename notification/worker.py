#!/usr/bin/env python3
"""
RQ worker for shortlist lifecycle notifications.

Consumes the jobs NotificationService enqueues after a transition has
committed. The Redis URL comes from the notifications section of
config.yaml, then REDIS_URL, then --redis-url.

Usage:
    python -m notification.worker
    python -m notification.worker --burst
    python -m notification.worker --config /etc/shortlist/config.yaml --verbose
"""

import os
import sys
import argparse
import logging
from typing import List, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Worker

from core.config_loader import NotificationConfig, load_config
from notification.service import QUEUE_NAME

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = 'redis://localhost:6379/0'


def resolve_redis_url(config: NotificationConfig, override: Optional[str] = None) -> str:
    return override or config.redis_url or os.environ.get('REDIS_URL') or DEFAULT_REDIS_URL


def start_worker(
    config: NotificationConfig,
    burst: bool = False,
    queues: Optional[List[str]] = None,
    redis_url: Optional[str] = None
) -> int:
    """
    Run an RQ worker over the notification queues.

    Returns the process exit code: 0 on a clean stop, 1 when Redis is
    unreachable.
    """
    redis_url = resolve_redis_url(config, redis_url)
    queues = queues or [QUEUE_NAME]

    logger.info(f"Starting notification worker on {', '.join(queues)} (burst={burst})")

    try:
        redis_conn = Redis.from_url(redis_url)
        redis_conn.ping()
        for name in queues:
            pending = len(Queue(name, connection=redis_conn))
            logger.info(f"Queue {name}: {pending} pending (cap {config.max_queue_length})")

        worker = Worker(queues, connection=redis_conn)
        worker.work(burst=burst)
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except RedisError as e:
        logger.error(f"Cannot reach Redis for notifications: {e}")
        return 1
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description='Shortlist notification worker')
    parser.add_argument('--config', default=os.environ.get('SHORTLIST_CONFIG', 'config.yaml'))
    parser.add_argument('--burst', action='store_true', help='Process all and exit')
    parser.add_argument('--queues', nargs='+', default=None)
    parser.add_argument('--redis-url', default=None)
    parser.add_argument('--verbose', action='store_true')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = load_config(args.config)
    sys.exit(start_worker(
        config.notifications, burst=args.burst, queues=args.queues, redis_url=args.redis_url
    ))


if __name__ == '__main__':
    main()
