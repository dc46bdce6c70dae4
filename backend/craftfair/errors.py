"""
Domain error taxonomy.

Every rejected operation raises one of these. The transport layer maps
`http_status` to a response and serializes `to_dict()`; the core never
turns them into return values.
"""
from __future__ import annotations


class FairError(Exception):
    """Base class for all core errors."""

    code = "FAIR_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(FairError):
    """Malformed input: non-positive quantities, missing fields, bad ranges."""

    code = "VALIDATION_ERROR"


class NotFound(FairError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidState(FairError):
    code = "INVALID_STATE"
    http_status = 409

    def __init__(self, entity: str, entity_id, expected, actual, message: str | None = None):
        super().__init__(
            message or f"{entity} {entity_id} is {actual}, expected {expected}",
            details={
                "entity": entity,
                "id": entity_id,
                "expected": expected,
                "actual": actual,
            },
        )
        self.entity = entity
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual


class InsufficientStock(FairError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: available {available}, requested {requested}",
            details={
                "product_id": product_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class DuplicateOperation(FairError):
    code = "DUPLICATE_OPERATION"
    http_status = 409

    def __init__(self, kind: str, message: str | None = None, details: dict | None = None):
        merged = {"kind": kind}
        merged.update(details or {})
        super().__init__(message or f"Duplicate {kind}", details=merged)
        self.kind = kind


class DowngradeNotAllowed(FairError):
    code = "DOWNGRADE_NOT_ALLOWED"

    def __init__(self, returned_price_cents: int, delivered_price_cents: int):
        super().__init__(
            "Exchange must deliver a product of equal or higher value",
            details={
                "returned_price_cents": returned_price_cents,
                "delivered_price_cents": delivered_price_cents,
            },
        )


class PaymentCoherenceViolation(FairError):
    code = "PAYMENT_COHERENCE_VIOLATION"


class CrossEntityMismatch(FairError):
    code = "CROSS_ENTITY_MISMATCH"


class PersistenceFailure(FairError):
    """Storage-layer failure; the transaction was rolled back."""

    code = "PERSISTENCE_FAILURE"
    http_status = 500
