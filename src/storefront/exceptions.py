"""
Order domain errors

Raised by the service layer; the HTTP layer renders them through a single
exception handler using ``status_code`` and ``payload()``.
"""


class StorefrontError(Exception):
    """Base class for every error the order core raises on purpose."""

    status_code = 500
    code = "storefront_error"

    def __init__(self, message, code=None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)

    def payload(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(StorefrontError):
    """Malformed or missing input. Raised before storage is touched."""

    status_code = 400
    code = "validation_error"


class AuthenticationRequired(StorefrontError):
    """No usable caller identity (missing, malformed or expired token)."""

    status_code = 401
    code = "authentication_required"

    def __init__(self, message="Authentication required"):
        super().__init__(message)


class Forbidden(StorefrontError):
    """Authenticated caller without the role the operation needs."""

    status_code = 403
    code = "forbidden"

    def __init__(self, message="Admin access required"):
        super().__init__(message)


class NotFound(StorefrontError):
    """Entity is missing, or hidden from a caller who does not own it."""

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource.capitalize()} with ID {identifier} not found")

    def payload(self) -> dict:
        data = super().payload()
        data.update(resource=self.resource, identifier=self.identifier)
        return data


class InsufficientStock(StorefrontError):
    status_code = 400
    code = "insufficient_stock"

    def __init__(self, product_id: int, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough stock for product with ID {product_id}: "
            f"requested {requested}, available {available}"
        )

    def payload(self) -> dict:
        data = super().payload()
        data.update(
            product_id=self.product_id,
            available=self.available,
            requested=self.requested
        )
        return data


class PersistenceError(StorefrontError):
    """Storage failure. The unit of work has already been rolled back."""

    status_code = 500
    code = "persistence_error"
