import logging
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.errors import ConflictError
from core.utils import utcnow
from database.models import Payment
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

# Statuses that still hold (or have moved) money for a request
ACTIVE_PAYMENT_STATUSES = ('none', 'authorized', 'captured', 'partially_captured')

# Statuses a finalize/release call can find a payment in
SETTLEABLE_PAYMENT_STATUSES = ACTIVE_PAYMENT_STATUSES + ('released',)


class PaymentRepository(BaseRepository):
    def add(self, payment: Payment) -> Payment:
        self.db.add(payment)
        try:
            self.db.flush()  # Generate ID
        except IntegrityError as e:
            raise ConflictError(
                f"Request {payment.shortlist_request_id} already has an active payment"
            ) from e
        return payment

    def get(self, payment_id: Any) -> Optional[Payment]:
        return self.db.get(Payment, payment_id)

    def list_for_request(self, request_id: Any) -> List[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.shortlist_request_id == request_id)
            .order_by(Payment.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def _latest_with_status(self, request_id: Any, statuses) -> Optional[Payment]:
        stmt = (
            select(Payment)
            .where(
                Payment.shortlist_request_id == request_id,
                Payment.status.in_(statuses),
            )
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def get_active_for_request(self, request_id: Any) -> Optional[Payment]:
        """Most recent payment that is not failed, released or expired."""
        return self._latest_with_status(request_id, ACTIVE_PAYMENT_STATUSES)

    def get_settleable_for_request(self, request_id: Any) -> Optional[Payment]:
        """Most recent payment that is not failed or expired."""
        return self._latest_with_status(request_id, SETTLEABLE_PAYMENT_STATUSES)

    def compare_and_set_status(self, payment: Payment, expected_status: str, new_status: str, **values: Any) -> Payment:
        values['status'] = new_status
        values.setdefault('updated_at', utcnow())
        self._compare_and_set(Payment, payment, expected_status, values)
        return payment

    def update_fields(self, payment: Payment, expected_status: str, **values: Any) -> Payment:
        values.setdefault('updated_at', utcnow())
        self._compare_and_set(Payment, payment, expected_status, values)
        return payment
