"""Error kinds raised by the stock ledger, order state machine and cart services.

Two families let collaborators tell a caller bug from a normal business outcome:

- ``InvalidRequest``: bad input or a reference to something that does not exist.
- ``BusinessRuleViolation``: the request was well formed but the current state
  refuses it (not enough stock, status change not allowed, cart already closed).

``ConcurrentModification`` means "try the whole operation again".
"""


class ShopError(Exception):
    """Base class for all stock/order/cart errors."""

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.__class__.__name__)
        self.context = context
        for key, value in context.items():
            setattr(self, key, value)


class InvalidRequest(ShopError):
    pass


class BusinessRuleViolation(ShopError):
    pass


class InvalidQuantity(InvalidRequest):
    pass


class UnknownProduct(InvalidRequest):
    pass


class UnknownMovement(InvalidRequest):
    pass


class UnknownOrder(InvalidRequest):
    pass


class UnknownCart(InvalidRequest):
    pass


class InsufficientStock(BusinessRuleViolation):
    pass


class InvalidTransition(BusinessRuleViolation):
    pass


class CartNotActive(BusinessRuleViolation):
    pass


class CartAlreadyConverted(CartNotActive):
    pass


class CartEmpty(BusinessRuleViolation):
    pass


class ConcurrentModification(ShopError):
    """Lock or version conflict detected while applying a change."""


class ConfigurationError(ShopError):
    """A collaborator (clock, config lookup, notifier) is missing or unusable."""
