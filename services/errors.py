class OrderError(Exception):
    """Base class for errors raised by the ordering services."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderError):
    """Request is malformed: empty order, missing delivery address, unknown status."""

    status_code = 400


class NotFoundError(OrderError):
    status_code = 404


class StateError(OrderError):
    """Order is not in a state that allows the requested transition."""

    status_code = 409


class ConcurrentUpdateError(StateError):
    """Order status changed underneath the request."""


class InsufficientStockError(OrderError):
    status_code = 409


class StorageError(OrderError):
    """Database failure; the transaction was rolled back."""

    status_code = 500
