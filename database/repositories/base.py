from typing import Any, Dict

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from core.errors import ConflictError


class BaseRepository:
    def __init__(self, db: Session):
        self.db = db

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def flush(self) -> None:
        self.db.flush()

    def _compare_and_set(self, model, instance, expected_status: str, values: Dict[str, Any]) -> None:
        """
        Conditional UPDATE ... WHERE id = :id AND status = :expected.

        Raises ConflictError when another writer changed the status since it
        was read. On success the in-memory instance is brought in line without
        marking it dirty.
        """
        stmt = (
            update(model)
            .where(model.id == instance.id, model.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            raise ConflictError(
                f"{model.__name__} {instance.id} is no longer '{expected_status}'"
            )
        for key, value in values.items():
            set_committed_value(instance, key, value)
