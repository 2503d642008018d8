"""
Error taxonomy shared by the services.

Services raise these; the API layer turns them into JSON responses with the
status code carried by each class.
"""


class CanteenAppError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class Unauthenticated(CanteenAppError):
    status_code = 401
    default_message = "Please sign in to continue"


class Forbidden(CanteenAppError):
    status_code = 403
    default_message = "You are not allowed to do that"


class IllegalTransition(Forbidden):
    def __init__(self, current: str, new: str):
        super().__init__(f"Cannot change order status from {current} to {new}")
        self.current = current
        self.new = new


class NotFound(CanteenAppError):
    status_code = 404
    default_message = "Not found"


class EmptyCart(CanteenAppError):
    status_code = 400
    default_message = "Cart is empty"


class Conflict(CanteenAppError):
    status_code = 409
    default_message = "Conflicting update"


class StaleTransition(Conflict):
    def __init__(self, order_id: int, expected: str):
        super().__init__(
            f"Order {order_id} is no longer {expected}; reload and try again"
        )
        self.order_id = order_id
        self.expected = expected


class PersistenceFailure(CanteenAppError):
    status_code = 500
    default_message = "Something went wrong while saving. Please try again."
