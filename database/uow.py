import contextlib
import logging
from typing import Optional

from database.database import SessionLocal
from database.repository import BrokerRepository

logger = logging.getLogger(__name__)


def flush_outbox(repo: BrokerRepository, dispatcher) -> None:
    """Hand staged notifications to the dispatcher; failures never propagate."""
    jobs, repo.outbox = repo.outbox, []
    if dispatcher is None:
        if jobs:
            logger.debug(f"No notification dispatcher configured; dropping {len(jobs)} staged job(s)")
        return
    for job in jobs:
        try:
            dispatcher.dispatch(job)
        except Exception as e:
            logger.error(f"Failed to dispatch notification {job.get('email_event')}: {e}", exc_info=True)


@contextlib.contextmanager
def shortlist_uow(session_factory=None, dispatcher: Optional[object] = None):
    """Per-unit-of-work transaction scope.

    Yields a BrokerRepository bound to a fresh Session. Commits on success,
    rolls back on exception, always closes. Notifications staged during the
    unit of work go to `dispatcher` after the commit.

    Usage:
        with shortlist_uow(dispatcher=notification_service) as repo:
            machine = context.state_machine(repo)
            machine.approve_scope(request_id, actor)
        # commit happens automatically on successful exit
    """
    session = (session_factory or SessionLocal)()
    try:
        repo = BrokerRepository(session)
        yield repo
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    flush_outbox(repo, dispatcher)
