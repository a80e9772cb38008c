"""
BaseService -- abstract base for kernel write services.

Responsibility:
    Common constructor and session contract.  Every service receives a
    caller-owned SQLAlchemy ``Session`` and uses ``session.flush()`` --
    never ``session.commit()``.

Architecture position:
    Kernel > Services.  The orchestrator in ``requisition_services`` owns
    commit and rollback, which is what makes one gate decision atomic
    across the requisition row, the ledger and the log.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in ``requisition_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
