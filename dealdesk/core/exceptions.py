"""
Engine-wide exception hierarchy.

Services raise these types and nothing else for expected failures, so a
transport layer can register one handler per type and map it to a status
code. Each error carries a machine-readable ``code`` and the HTTP-equivalent
``status``.

Usage:
    from dealdesk.core.exceptions import NotFoundError, UnauthorizedError

    raise NotFoundError("Transaction", transaction_id)
    raise UnauthorizedError("update", "Transaction", transaction_id, actor_id)
"""


class DealDeskError(Exception):
    """Base class for all domain failures raised by the engine."""

    code = "INTERNAL"
    status = 500

    def __init__(self, message: str, *, code: str | None = None, details: dict | None = None) -> None:
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Body shape shared with the API error envelope: error, code, details."""
        body = {"error": str(self), "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(DealDeskError):
    """Raised when a property, transaction, offer or milestone does not exist.

    The code is derived from the resource name: ``Offer`` → ``OFFER_NOT_FOUND``.

    Args:
        resource: Human-readable entity name (e.g. "Transaction", "Milestone").
        resource_id: The PK that was looked up.
    """

    status = 404

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, code=f"{resource.upper()}_NOT_FOUND")


class UnauthorizedError(DealDeskError):
    """Raised when the actor is not buyer, seller, agent or property owner.

    Never retried; terminal for the call.
    """

    code = "UNAUTHORIZED"
    status = 403

    def __init__(
        self,
        action: str,
        resource: str,
        resource_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        self.action = action
        self.resource = resource
        self.resource_id = resource_id
        self.actor_id = actor_id
        super().__init__(f"Not authorized to {action} this {resource.lower()}")


class ValidationError(DealDeskError):
    """Raised when input is well-formed but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    code = "VALIDATION_ERROR"
    status = 422


class ConflictError(DealDeskError):
    """Raised when the current state forbids the operation.

    Covers illegal status transitions, responding to a settled offer,
    re-completing a milestone and lost optimistic-concurrency races.
    Maps to HTTP 409.
    """

    code = "CONFLICT"
    status = 409


class PersistenceError(DealDeskError):
    """Storage failure inside a unit of work.

    The underlying exception is chained as ``__cause__`` and logged; it is
    never part of the message. Callers may retry.
    """

    code = "DATABASE_ERROR"
    status = 500

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Database error during {operation}")
