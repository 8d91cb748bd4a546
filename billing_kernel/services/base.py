"""
BaseService -- common base for kernel services.

Services receive a SQLAlchemy ``Session`` from the caller and persist with
``session.flush()``; they never commit or roll back the caller's
transaction.  Operations that must be atomic on their own open a SAVEPOINT
with ``session.begin_nested()``, which rolls back only their own work.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``; the caller controls transaction
          boundaries.
    """

    def __init__(self, session: Session):
        self.session = session
