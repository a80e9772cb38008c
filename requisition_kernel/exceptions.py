"""
Typed Exception Hierarchy for the Requisition Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow (an API layer, a batch job, a test) must be able to
tell a forbidden actor from a missing comment without parsing messages.
Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (which item, which status, ...)

Example - WRONG way to handle errors:
    try:
        orchestrator.review(requisition_id, actor_id, decisions)
    except Exception as e:
        if "comment" in str(e):  # FRAGILE
            ...

Example - RIGHT way (what this module enables):
    try:
        orchestrator.review(requisition_id, actor_id, decisions)
    except MissingRejectionCommentError as e:
        api_response(code=e.code, item=e.item_number, material=e.material_code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RequisitionKernelError:

    RequisitionKernelError (base)
    |
    +-- ForbiddenError
    |   +-- GateNotAuthorizedError
    |   +-- NotCreatorError
    |
    +-- IncompleteDecisionError
    |
    +-- ValidationError
    |   +-- MissingRejectionCommentError
    |   +-- UnknownItemDecisionError
    |   +-- DuplicateItemDecisionError
    |   +-- EmptyRequisitionError
    |   +-- InvalidQuantityError
    |   +-- UnknownItemReferenceError
    |   +-- DuplicateItemReferenceError
    |   +-- AuthorizationEdgeConflictError
    |   +-- SelfAuthorizationError
    |
    +-- IllegalTransitionError
    |   +-- GateNotApplicableError
    |   +-- NotEditableError
    |   +-- DownstreamTransitionError
    |
    +-- ConcurrencyConflictError
    |
    +-- NotFoundError
    |   +-- RequisitionNotFoundError
    |   +-- MaterialNotFoundError
    |   +-- MasterDataNotFoundError
    |   +-- UserNotFoundError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|-------------------------------------------
Forbidden     | GATE_NOT_AUTHORIZED         | Actor has no edge / role for the gate
              | NOT_CREATOR                 | Only the creator may edit or submit
--------------|-----------------------------|-------------------------------------------
Decision      | INCOMPLETE_DECISION         | Some current item got no decision
--------------|-----------------------------|-------------------------------------------
Validation    | MISSING_REJECTION_COMMENT   | Rejected item without comments
              | UNKNOWN_ITEM_DECISION       | Decision for an item not in the document
              | DUPLICATE_ITEM_DECISION     | Two decisions for the same item
              | EMPTY_REQUISITION           | Requisition / edit leaves zero items
              | INVALID_QUANTITY            | Item quantity <= 0 or not finite
              | UNKNOWN_ITEM_REFERENCE      | Edit references an item number not present
              | DUPLICATE_ITEM_REFERENCE    | Edit lists an existing item number twice
              | AUTHORIZATION_EDGE_CONFLICT | Pair already linked with another gate type
              | SELF_AUTHORIZATION          | User linked to themselves
--------------|-----------------------------|-------------------------------------------
Transition    | GATE_NOT_APPLICABLE         | Gate does not apply to current status
              | NOT_EDITABLE                | Edit / resubmit from a non-editable status
              | DOWNSTREAM_TRANSITION       | Illegal external status write
--------------|-----------------------------|-------------------------------------------
Concurrency   | CONCURRENCY_CONFLICT        | Version mismatch, retry with fresh state
--------------|-----------------------------|-------------------------------------------
Not found     | REQUISITION_NOT_FOUND       | Unknown requisition id
              | MATERIAL_NOT_FOUND          | Master data has no such material
              | MASTER_DATA_NOT_FOUND       | Unknown company / project / center
              | USER_NOT_FOUND              | Unknown user
--------------|-----------------------------|-------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION      | Update/delete of an append-only record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH THE CATEGORY WHEN THE REACTION IS THE SAME:

    except ValidationError as e:
        return 422, {"error": e.code, "message": str(e)}

2. ConcurrencyConflictError is the only retryable error.  The orchestrator
   retries it once with a fresh transaction before surfacing it.

3. Every failure leaves the requisition untouched: the transaction that
   raised is rolled back by its owner.
"""

from __future__ import annotations


class RequisitionKernelError(Exception):
    """
    Base exception for all requisition kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REQUISITION_KERNEL_ERROR"


# Forbidden


class ForbiddenError(RequisitionKernelError):
    """Actor lacks the authorization edge or role required."""

    code: str = "FORBIDDEN"


class GateNotAuthorizedError(ForbiddenError):
    """Actor may not act at this gate for this requisition's creator."""

    code: str = "GATE_NOT_AUTHORIZED"

    def __init__(self, requisition_id: str, gate: str, actor_id: str):
        self.requisition_id = requisition_id
        self.gate = gate
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} is not authorized to act at gate '{gate}' "
            f"for requisition {requisition_id}"
        )


class NotCreatorError(ForbiddenError):
    """Only the creator of the requisition may perform this operation."""

    code: str = "NOT_CREATOR"

    def __init__(self, requisition_id: str, actor_id: str, operation: str):
        self.requisition_id = requisition_id
        self.actor_id = actor_id
        self.operation = operation
        super().__init__(
            f"Only the creator may {operation} requisition {requisition_id} "
            f"(actor {actor_id})"
        )


# Decision completeness


class IncompleteDecisionError(RequisitionKernelError):
    """Not every current item was given a decision."""

    code: str = "INCOMPLETE_DECISION"

    def __init__(self, requisition_id: str, gate: str, missing_items: list[int]):
        self.requisition_id = requisition_id
        self.gate = gate
        self.missing_items = list(missing_items)
        items = ", ".join(str(n) for n in self.missing_items)
        super().__init__(
            f"Gate '{gate}' on requisition {requisition_id} is missing "
            f"decisions for items: {items}"
        )


# Validation


class ValidationError(RequisitionKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class MissingRejectionCommentError(ValidationError):
    """A rejected item carries no comments."""

    code: str = "MISSING_REJECTION_COMMENT"

    def __init__(self, item_number: int, material_code: str | None = None):
        self.item_number = item_number
        self.material_code = material_code
        label = f"Item {item_number}"
        if material_code:
            label += f" ({material_code})"
        super().__init__(f"{label} was rejected without comments")


class UnknownItemDecisionError(ValidationError):
    """A decision references an item the requisition does not contain."""

    code: str = "UNKNOWN_ITEM_DECISION"

    def __init__(self, requisition_id: str, item_number: int):
        self.requisition_id = requisition_id
        self.item_number = item_number
        super().__init__(
            f"Requisition {requisition_id} has no item {item_number}"
        )


class DuplicateItemDecisionError(ValidationError):
    """Two decisions were supplied for the same item."""

    code: str = "DUPLICATE_ITEM_DECISION"

    def __init__(self, item_number: int):
        self.item_number = item_number
        super().__init__(f"More than one decision supplied for item {item_number}")


class EmptyRequisitionError(ValidationError):
    """A requisition must keep at least one item."""

    code: str = "EMPTY_REQUISITION"

    def __init__(self, requisition_id: str | None = None):
        self.requisition_id = requisition_id
        target = f"Requisition {requisition_id}" if requisition_id else "Requisition"
        super().__init__(f"{target} must contain at least one item")


class InvalidQuantityError(ValidationError):
    """Item quantity must be a finite, strictly positive number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, material_id: int, quantity: object):
        self.material_id = material_id
        self.quantity = quantity
        super().__init__(
            f"Quantity for material {material_id} must be a finite number greater than zero, "
            f"got {quantity}"
        )


class UnknownItemReferenceError(ValidationError):
    """An edit references an item number that is not on the requisition."""

    code: str = "UNKNOWN_ITEM_REFERENCE"

    def __init__(self, requisition_id: str, item_number: int):
        self.requisition_id = requisition_id
        self.item_number = item_number
        super().__init__(
            f"Cannot edit item {item_number}: not on requisition {requisition_id}"
        )


class DuplicateItemReferenceError(ValidationError):
    """An edit lists the same existing item number twice."""

    code: str = "DUPLICATE_ITEM_REFERENCE"

    def __init__(self, requisition_id: str, item_number: int):
        self.requisition_id = requisition_id
        self.item_number = item_number
        super().__init__(
            f"Item {item_number} of requisition {requisition_id} is listed more than once"
        )


class AuthorizationEdgeConflictError(ValidationError):
    """The (authorizer, subordinate) pair is already linked with another gate type."""

    code: str = "AUTHORIZATION_EDGE_CONFLICT"

    def __init__(
        self,
        authorizer_id: str,
        subordinate_id: str,
        existing_type: str,
        requested_type: str,
    ):
        self.authorizer_id = authorizer_id
        self.subordinate_id = subordinate_id
        self.existing_type = existing_type
        self.requested_type = requested_type
        super().__init__(
            f"{authorizer_id} already holds a '{existing_type}' edge over "
            f"{subordinate_id}; cannot add '{requested_type}'"
        )


class SelfAuthorizationError(ValidationError):
    """A user cannot be linked to themselves."""

    code: str = "SELF_AUTHORIZATION"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot authorize themselves")


# Transitions


class IllegalTransitionError(RequisitionKernelError):
    """The requested operation does not apply to the current status."""

    code: str = "ILLEGAL_TRANSITION"


class GateNotApplicableError(IllegalTransitionError):
    """Gate does not apply to the requisition's current status."""

    code: str = "GATE_NOT_APPLICABLE"

    def __init__(self, requisition_id: str, gate: str, status: str):
        self.requisition_id = requisition_id
        self.gate = gate
        self.status = status
        super().__init__(
            f"Gate '{gate}' does not apply to requisition {requisition_id} "
            f"in status '{status}'"
        )


class NotEditableError(IllegalTransitionError):
    """Operation requires an editable (or specific) status."""

    code: str = "NOT_EDITABLE"

    def __init__(self, requisition_id: str, status: str, operation: str):
        self.requisition_id = requisition_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} requisition {requisition_id} in status '{status}'"
        )


class DownstreamTransitionError(IllegalTransitionError):
    """External subsystem attempted an illegal status write."""

    code: str = "DOWNSTREAM_TRANSITION"

    def __init__(self, requisition_id: str, from_status: str, to_status: str):
        self.requisition_id = requisition_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Requisition {requisition_id} cannot move from '{from_status}' "
            f"to '{to_status}'"
        )


# Concurrency


class ConcurrencyConflictError(RequisitionKernelError):
    """Requisition was modified by another transaction."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(
        self,
        requisition_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.requisition_id = requisition_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrency conflict on requisition {requisition_id}: "
            f"modified by another transaction{detail}"
        )


# Not found


class NotFoundError(RequisitionKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class RequisitionNotFoundError(NotFoundError):
    """Requisition with given ID was not found."""

    code: str = "REQUISITION_NOT_FOUND"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(f"Requisition not found: {requisition_id}")


class MaterialNotFoundError(NotFoundError):
    """Master data has no such material."""

    code: str = "MATERIAL_NOT_FOUND"

    def __init__(self, material_id: int):
        self.material_id = material_id
        super().__init__(f"Material not found: {material_id}")


class MasterDataNotFoundError(NotFoundError):
    """A company / project / operation center reference does not exist."""

    code: str = "MASTER_DATA_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class UserNotFoundError(NotFoundError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Immutability


class ImmutabilityViolationError(RequisitionKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
