"""Error taxonomy of the allocation engine.

Every business failure rejects the whole requested operation.  Inside the
services these are raised; ``asset_register.services.engine`` turns them into
structured results via :meth:`AllocationError.to_dict`.
"""

from __future__ import annotations

from typing import Any


class AllocationError(Exception):
    """Base class for all errors the engine reports to callers."""

    code = "allocation_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class ValidationError(AllocationError):
    """Missing or invalid field."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None, **details: Any) -> None:
        if field is not None:
            details["field"] = field
        super().__init__(message, **details)
        self.field = field


class OverAllocation(AllocationError):
    """Requested quantity for a batch exceeds its true limit."""

    code = "over_allocation"

    def __init__(self, batch_id: int, true_limit: int, requested: int) -> None:
        super().__init__(
            f"Quantity for batch {batch_id} exceeds limit. "
            f"Available: {true_limit} (Requested: {requested})",
            batch_id=batch_id,
            true_limit=true_limit,
            requested=requested,
        )
        self.batch_id = batch_id
        self.true_limit = true_limit
        self.requested = requested


class BatchQuantityImmutable(AllocationError):
    code = "batch_quantity_immutable"

    def __init__(self, batch_id: int) -> None:
        super().__init__(
            f"Quantity of batch {batch_id} cannot be changed after purchase",
            batch_id=batch_id,
        )
        self.batch_id = batch_id


class BatchInUse(AllocationError):
    code = "batch_in_use"

    def __init__(self, batch_id: int, remaining: int, quantity: int) -> None:
        super().__init__(
            f"Batch {batch_id} has allocations ({quantity - remaining} of {quantity} units in use)",
            batch_id=batch_id,
            remaining_quantity=remaining,
            quantity=quantity,
        )
        self.batch_id = batch_id


class SameEntityTransfer(AllocationError):
    code = "same_entity_transfer"

    def __init__(self, entity_id: int) -> None:
        super().__init__(
            "Cannot transfer assets to the same employee", entity_id=entity_id
        )


class NotFound(AllocationError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id!r} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class InfrastructureFailure(AllocationError):
    """Storage / connectivity / constraint failure (not a business rule)."""

    code = "infrastructure_failure"
