"""
Module: requisition_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never call session.add(), delete(),
      flush() or commit().
    - DTO return convention: selectors return frozen dataclasses, never
      ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Read-only query helper bound to a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session
