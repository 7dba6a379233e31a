"""
Errors raised by the gateway and the order rules.

Each carries the HTTP status the API layer answers with, so main.py can
translate them with a single exception handler.
"""


class RestaurantError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StorageError(RestaurantError):
    """The document store was unreachable or rejected a write."""

    def __init__(self, operation: str):
        super().__init__(f"Failed to {operation}")
        self.operation = operation


class EmailAlreadyRegistered(RestaurantError):
    status_code = 400

    def __init__(self, email: str):
        super().__init__("Email already registered")
        self.email = email


class OrderNotFound(RestaurantError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class NotAuthorized(RestaurantError):
    status_code = 403


class InvalidTransition(RestaurantError):
    status_code = 409

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move order from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class InvalidAssignment(RestaurantError):
    status_code = 400


class ClaimConflict(RestaurantError):
    status_code = 409

    def __init__(self, order_id: str):
        super().__init__("Order was already claimed by another courier")
        self.order_id = order_id
