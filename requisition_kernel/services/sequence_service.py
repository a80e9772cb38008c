"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Allocates the human-readable requisition numbers.  Uses a dedicated
    counter table with row-level locking (``SELECT ... FOR UPDATE``) so
    concurrent creators never receive the same number.

Architecture position:
    Kernel > Services.  Called by RequisitionStateMachine.

Invariants enforced:
    - Sequences are strictly monotonic.  MAX(...) + 1 over the data
      tables is never used; the locked counter row is the only source of
      the next value.
    - The increment is transactional: it becomes visible when the caller
      commits and is returned on rollback.

Failure modes:
    - IntegrityError if two transactions seed the same counter at once.
      ``initialize_sequences`` (run by ``create_tables``) seeds the
      well-known counters up front so this cannot happen in normal use.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from requisition_kernel.db.base import Base
from requisition_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    REQUISITION_NUMBER = "requisition_number"
    WELL_KNOWN = (REQUISITION_NUMBER,)

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row, increment it and return the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this sequence.
        """
        counter = self._locked_counter(sequence_name)
        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            logger.info(
                "sequence_counter_created",
                extra={"sequence_name": sequence_name},
            )

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if the sequence is unknown."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def initialize_sequences(self) -> None:
        """Seed the well-known counters at 0 if absent."""
        for name in self.WELL_KNOWN:
            existing = self._session.execute(
                select(SequenceCounter).where(SequenceCounter.name == name)
            ).scalar_one_or_none()
            if existing is None:
                self._session.add(SequenceCounter(name=name, current_value=0))
        self._session.flush()
