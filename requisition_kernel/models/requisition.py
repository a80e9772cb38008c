"""
Module: requisition_kernel.models.requisition
Responsibility: ORM persistence for the requisition aggregate and its items.

Architecture position: Kernel > Models.  May import from db/ and the closed
    enums of domain/requisition.py only.

Invariants enforced:
    - requisition_id and requisition_number are write-once.
    - Status values are limited to the lifecycle enum (check constraint).
    - (requisition_id, item_number) is unique; item numbers are 1-based.
    - quantity > 0 (check constraint).
    - ``version`` is the mapper's version_id_col: every UPDATE carries
      ``WHERE version = <loaded>``, so a concurrent writer surfaces as
      StaleDataError instead of a lost update.

Failure modes:
    - IntegrityError on duplicate requisition_number or item_number.
    - StaleDataError on flush when the row changed since it was loaded.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_kernel.db.base import Base, UUIDString
from requisition_kernel.domain.requisition import Priority, RequisitionStatus

if TYPE_CHECKING:
    from requisition_kernel.domain.requisition import RequisitionSnapshot


def _in_list(column: str, values) -> str:
    return f"{column} IN (" + ", ".join(f"'{v.value}'" for v in values) + ")"


class RequisitionModel(Base):
    """Persistent requisition header.

    Contract:
        Status changes only through RequisitionStateMachine.  Derived SLA
        fields (overdue, remaining) are never stored.
    """

    __tablename__ = "requisitions"

    __table_args__ = (
        CheckConstraint(
            _in_list("status", RequisitionStatus),
            name="ck_requisitions_valid_status",
        ),
        CheckConstraint(
            _in_list("priority", Priority),
            name="ck_requisitions_valid_priority",
        ),
        Index("ix_requisitions_creator", "creator_id", "created_at"),
        Index("ix_requisitions_status", "status", "sla_deadline"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    requisition_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True,
    )
    creator_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    company_id: Mapped[int] = mapped_column(nullable=False)
    project_id: Mapped[int | None] = mapped_column(nullable=True)
    operation_center_id: Mapped[int | None] = mapped_column(nullable=True)
    project_code_id: Mapped[int | None] = mapped_column(nullable=True)
    obra: Mapped[str | None] = mapped_column(String(200), nullable=True)
    codigo_obra: Mapped[str | None] = mapped_column(String(100), nullable=True)
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Priority.NORMAL.value,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    # Status held when the rejecting gate was entered; resubmission target
    status_before_rejection: Mapped[str | None] = mapped_column(
        String(50), nullable=True,
    )
    sla_deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)

    items: Mapped[list["RequisitionItemModel"]] = relationship(
        "RequisitionItemModel",
        back_populates="requisition",
        order_by="RequisitionItemModel.item_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Requisition {self.requisition_number} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> RequisitionSnapshot:
        """Convert ORM model to frozen domain snapshot."""
        from requisition_kernel.domain.requisition import (
            RequisitionItemSnapshot,
            RequisitionSnapshot as RequisitionSnapshotDTO,
        )

        return RequisitionSnapshotDTO(
            requisition_id=self.requisition_id,
            requisition_number=self.requisition_number,
            creator_id=self.creator_id,
            company_id=self.company_id,
            status=RequisitionStatus(self.status),
            priority=Priority(self.priority),
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
            project_id=self.project_id,
            operation_center_id=self.operation_center_id,
            project_code_id=self.project_code_id,
            obra=self.obra,
            codigo_obra=self.codigo_obra,
            sla_deadline=self.sla_deadline,
            items=tuple(
                RequisitionItemSnapshot(
                    item_number=item.item_number,
                    material_id=item.material_id,
                    quantity=item.quantity,
                    observation=item.observation,
                )
                for item in self.items
            ),
        )


class RequisitionItemModel(Base):
    """One requested material line."""

    __tablename__ = "requisition_items"

    __table_args__ = (
        UniqueConstraint(
            "requisition_id", "item_number",
            name="uq_requisition_items_number",
        ),
        CheckConstraint("quantity > 0", name="ck_requisition_items_quantity"),
        CheckConstraint("item_number >= 1", name="ck_requisition_items_number"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.requisition_id"),
        nullable=False,
    )
    item_number: Mapped[int] = mapped_column(nullable=False)
    material_id: Mapped[int] = mapped_column(nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    observation: Mapped[str | None] = mapped_column(Text, nullable=True)

    requisition: Mapped["RequisitionModel"] = relationship(
        "RequisitionModel",
        back_populates="items",
    )

    def __repr__(self) -> str:
        return (
            f"<RequisitionItem #{self.item_number} "
            f"material={self.material_id} qty={self.quantity}>"
        )
