"""
Outbound collaborator interfaces (``requisition_kernel.domain.directory``).

Master data (companies, projects, operation centers, materials), user
identities and the quotation subsystem live outside the kernel.  The
kernel sees them only through these protocols, injected by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence
from uuid import UUID

from requisition_kernel.domain.requisition import RequisitionSnapshot


@dataclass(frozen=True)
class MaterialRef:
    material_id: int
    code: str
    description: str = ""


@dataclass(frozen=True)
class MasterDataRef:
    """A resolved company / project / operation center reference."""

    entity_type: str
    entity_id: int
    name: str = ""


class MasterDataDirectory(Protocol):
    """Master-data lookups.  Each method returns ``None`` when unknown."""

    def resolve_material(self, material_id: int) -> MaterialRef | None:
        ...

    def resolve_company(self, company_id: int) -> MasterDataRef | None:
        ...

    def resolve_project(self, project_id: int) -> MasterDataRef | None:
        ...

    def resolve_operation_center(self, operation_center_id: int) -> MasterDataRef | None:
        ...


class UserDirectory(Protocol):
    """Identity lookups for actors and creators."""

    def exists(self, user_id: UUID) -> bool:
        ...

    def has_role(self, user_id: UUID, role: str) -> bool:
        ...

    def active_user_ids(self) -> Sequence[UUID]:
        ...


class QuotationHandoff(Protocol):
    """Receives requisitions that cleared management approval."""

    def requisition_ready(self, snapshot: RequisitionSnapshot) -> None:
        ...
