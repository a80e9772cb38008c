"""
Module: requisition_kernel.models.authorization_edge
Responsibility: ORM persistence for delegation edges (authorizer ->
    subordinate, by gate type).

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one edge per (authorizer, subordinate) pair, whatever its
      type (unique constraint).
    - No self edges (check constraint).

Failure modes:
    - IntegrityError on a duplicate pair or self edge that bypassed
      AuthorizationGraph validation.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.authorization import AuthorizationEdge


class AuthorizationEdgeModel(Base):
    """Administrative delegation edge."""

    __tablename__ = "authorization_edges"

    __table_args__ = (
        UniqueConstraint(
            "authorizer_id", "subordinate_id",
            name="uq_authorization_edges_pair",
        ),
        CheckConstraint(
            "authorizer_id <> subordinate_id",
            name="ck_authorization_edges_no_self",
        ),
        CheckConstraint(
            "authorization_type IN ('revision', 'autorizacion', 'aprobacion')",
            name="ck_authorization_edges_valid_type",
        ),
        Index(
            "ix_authorization_edges_subordinate",
            "subordinate_id", "authorization_type",
        ),
    )

    authorizer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    subordinate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    authorization_type: Mapped[str] = mapped_column(String(20), nullable=False)
    level: Mapped[int] = mapped_column(nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AuthorizationEdge {self.authorizer_id} -> {self.subordinate_id} "
            f"{self.authorization_type}>"
        )

    def to_dto(self) -> AuthorizationEdge:
        from requisition_kernel.domain.authorization import (
            AuthorizationEdge as AuthorizationEdgeDTO,
        )
        from requisition_kernel.domain.requisition import AuthorizationType

        return AuthorizationEdgeDTO(
            edge_id=self.id,
            authorizer_id=self.authorizer_id,
            subordinate_id=self.subordinate_id,
            authorization_type=AuthorizationType(self.authorization_type),
            level=self.level,
            created_at=self.created_at,
        )
