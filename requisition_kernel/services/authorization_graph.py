"""
AuthorizationGraph -- who may act on whose requisitions, per gate type.

Responsibility:
    Stores administrative delegation edges ``authorizer -> subordinate``
    tagged with a gate type (revision / autorizacion / aprobacion) and
    answers the single-hop question "may this actor act on this creator's
    requisition at this gate type".

Architecture position:
    Kernel > Services.  Leaf service: depends only on its own model and
    the injected UserDirectory.

Invariants enforced:
    - One edge per (authorizer, subordinate) pair.  Re-adding the same
      type is a no-op; adding a different type is a ValidationError.
    - No self edges.
    - Authorization is single hop.  Cycles are accepted and meaningless.

Failure modes:
    - SelfAuthorizationError, AuthorizationEdgeConflictError.
    - UserNotFoundError when a UserDirectory is injected and an endpoint
      is unknown.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from requisition_kernel.domain.authorization import (
    AuthorizationEdge,
    BulkEdgeResult,
    HierarchyEntry,
)
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.directory import UserDirectory
from requisition_kernel.domain.requisition import AuthorizationType
from requisition_kernel.exceptions import (
    AuthorizationEdgeConflictError,
    NotFoundError,
    SelfAuthorizationError,
    UserNotFoundError,
    ValidationError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.authorization_edge import AuthorizationEdgeModel
from requisition_kernel.services.base import BaseService

logger = get_logger("services.authorization_graph")


class AuthorizationGraph(BaseService):
    """Delegation edges and single-hop authorization checks."""

    def __init__(
        self,
        session: Session,
        users: UserDirectory | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._users = users
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def can_act(
        self,
        actor_id: UUID,
        creator_id: UUID,
        authorization_type: AuthorizationType,
    ) -> bool:
        """True iff an edge ``actor -> creator`` of exactly this type exists."""
        if actor_id == creator_id:
            return False
        edge = self._edge_model(actor_id, creator_id)
        return edge is not None and edge.authorization_type == authorization_type.value

    def subordinates_of(
        self,
        authorizer_id: UUID,
        authorization_type: AuthorizationType | None = None,
    ) -> list[AuthorizationEdge]:
        stmt = select(AuthorizationEdgeModel).where(
            AuthorizationEdgeModel.authorizer_id == authorizer_id,
        )
        if authorization_type is not None:
            stmt = stmt.where(
                AuthorizationEdgeModel.authorization_type == authorization_type.value,
            )
        stmt = stmt.order_by(AuthorizationEdgeModel.created_at)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def supervisors_of(
        self,
        subordinate_id: UUID,
        authorization_type: AuthorizationType | None = None,
    ) -> list[AuthorizationEdge]:
        stmt = select(AuthorizationEdgeModel).where(
            AuthorizationEdgeModel.subordinate_id == subordinate_id,
        )
        if authorization_type is not None:
            stmt = stmt.where(
                AuthorizationEdgeModel.authorization_type == authorization_type.value,
            )
        stmt = stmt.order_by(AuthorizationEdgeModel.created_at)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def authorizers_for(
        self,
        subordinate_id: UUID,
        authorization_type: AuthorizationType,
    ) -> list[UUID]:
        return [
            e.authorizer_id
            for e in self.supervisors_of(subordinate_id, authorization_type)
        ]

    def available_subordinates(self, actor_id: UUID) -> list[UUID]:
        """Active users not yet linked under ``actor_id`` for any gate type."""
        if self._users is None:
            raise RuntimeError("available_subordinates requires a UserDirectory")
        linked = {e.subordinate_id for e in self.subordinates_of(actor_id)}
        return [
            user_id
            for user_id in self._users.active_user_ids()
            if user_id != actor_id and user_id not in linked
        ]

    def hierarchy(self) -> list[HierarchyEntry]:
        """Every authorizer with their subordinates grouped by edge type."""
        rows = self.session.execute(
            select(AuthorizationEdgeModel).order_by(
                AuthorizationEdgeModel.authorizer_id,
                AuthorizationEdgeModel.created_at,
            )
        ).scalars()

        grouped: dict[UUID, dict[AuthorizationType, list[UUID]]] = defaultdict(
            lambda: defaultdict(list)
        )
        for row in rows:
            grouped[row.authorizer_id][AuthorizationType(row.authorization_type)].append(
                row.subordinate_id
            )

        return [
            HierarchyEntry(
                authorizer_id=authorizer_id,
                subordinates={t: tuple(ids) for t, ids in by_type.items()},
            )
            for authorizer_id, by_type in grouped.items()
        ]

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def add_edge(
        self,
        authorizer_id: UUID,
        subordinate_id: UUID,
        authorization_type: AuthorizationType,
        level: int = 1,
    ) -> AuthorizationEdge:
        """Create the edge, or return the identical existing one."""
        edge, _ = self._add_edge(authorizer_id, subordinate_id, authorization_type, level)
        return edge

    def remove_edge(self, authorizer_id: UUID, subordinate_id: UUID) -> bool:
        """Delete the pair's edge.  Returns False if there was none."""
        model = self._edge_model(authorizer_id, subordinate_id)
        if model is None:
            return False
        self.session.delete(model)
        self.session.flush()
        logger.info(
            "authorization_edge_removed",
            extra={
                "authorizer_id": str(authorizer_id),
                "subordinate_id": str(subordinate_id),
                "authorization_type": model.authorization_type,
            },
        )
        return True

    def add_edges_bulk(
        self,
        authorizer_id: UUID,
        subordinate_ids: Iterable[UUID],
        authorization_type: AuthorizationType,
        level: int = 1,
    ) -> BulkEdgeResult:
        """Assign many subordinates at once; failures are reported per user."""
        created: list[UUID] = []
        skipped: list[UUID] = []
        errors: list[tuple[UUID, str]] = []

        for subordinate_id in subordinate_ids:
            try:
                _, was_created = self._add_edge(
                    authorizer_id, subordinate_id, authorization_type, level,
                )
            except (ValidationError, NotFoundError) as exc:
                errors.append((subordinate_id, exc.code))
                continue
            if was_created:
                created.append(subordinate_id)
            else:
                skipped.append(subordinate_id)

        logger.info(
            "authorization_edges_bulk_added",
            extra={
                "authorizer_id": str(authorizer_id),
                "authorization_type": authorization_type.value,
                "created": len(created),
                "skipped": len(skipped),
                "errors": len(errors),
            },
        )
        return BulkEdgeResult(
            created=tuple(created),
            skipped=tuple(skipped),
            errors=tuple(errors),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _edge_model(
        self, authorizer_id: UUID, subordinate_id: UUID,
    ) -> AuthorizationEdgeModel | None:
        return self.session.execute(
            select(AuthorizationEdgeModel).where(
                AuthorizationEdgeModel.authorizer_id == authorizer_id,
                AuthorizationEdgeModel.subordinate_id == subordinate_id,
            )
        ).scalar_one_or_none()

    def _add_edge(
        self,
        authorizer_id: UUID,
        subordinate_id: UUID,
        authorization_type: AuthorizationType,
        level: int,
    ) -> tuple[AuthorizationEdge, bool]:
        if authorizer_id == subordinate_id:
            raise SelfAuthorizationError(str(authorizer_id))
        if self._users is not None:
            for user_id in (authorizer_id, subordinate_id):
                if not self._users.exists(user_id):
                    raise UserNotFoundError(str(user_id))

        existing = self._edge_model(authorizer_id, subordinate_id)
        if existing is not None:
            if existing.authorization_type != authorization_type.value:
                raise AuthorizationEdgeConflictError(
                    authorizer_id=str(authorizer_id),
                    subordinate_id=str(subordinate_id),
                    existing_type=existing.authorization_type,
                    requested_type=authorization_type.value,
                )
            logger.debug(
                "authorization_edge_exists",
                extra={
                    "authorizer_id": str(authorizer_id),
                    "subordinate_id": str(subordinate_id),
                },
            )
            return existing.to_dto(), False

        model = AuthorizationEdgeModel(
            authorizer_id=authorizer_id,
            subordinate_id=subordinate_id,
            authorization_type=authorization_type.value,
            level=level,
            created_at=self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "authorization_edge_added",
            extra={
                "authorizer_id": str(authorizer_id),
                "subordinate_id": str(subordinate_id),
                "authorization_type": authorization_type.value,
                "level": level,
            },
        )
        return model.to_dto(), True
