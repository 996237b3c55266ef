"""
Domain exceptions.

The conversation engine recovers validation and menu lookup failures
locally by replying in-band. Everything else travels up to the HTTP layer,
which maps each class to a status code in one place.
"""


class OrderingError(Exception):
    """Base class for all ordering-domain failures."""

    status_code = 500

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context


class InputValidationError(OrderingError):
    """Malformed command, bad date format or a schedule time in the past."""

    status_code = 400


class NotFoundError(OrderingError):
    """A referenced record does not exist."""

    status_code = 404


class MenuItemNotFoundError(NotFoundError):
    """Unknown or unavailable menu item id."""

    def __init__(self, item_id: int):
        super().__init__(f"Menu item {item_id} not found", item_id=item_id)
        self.item_id = item_id


class OrderNotFoundError(NotFoundError):
    """Unknown placed order id."""

    def __init__(self, order_id: int):
        super().__init__(f"Order #{order_id} not found", order_id=order_id)
        self.order_id = order_id


class StorageError(OrderingError):
    """
    Transaction or connection failure.

    Never recovered locally. The unit of work that raised it has already
    been rolled back, so the caller may retry the whole turn.
    """

    status_code = 503
    retryable = True


class PaymentError(OrderingError):
    """The payment gateway rejected or failed a request."""

    status_code = 502
