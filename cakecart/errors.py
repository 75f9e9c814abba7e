"""
Cart Errors

Centralized error messages and the exception hierarchy of the cart core.

Expected conditions (unknown line, invalid input) are raised by the pure
transitions and turned into CartResult values by CartStore. Only
CartUnavailableError escapes the store.
"""

# Line errors
ERROR_LINE_NOT_FOUND = "Item not found in cart"
ERROR_SAVED_LINE_NOT_FOUND = "Item not found in saved items"

# Input errors
ERROR_INVALID_PRODUCT_ID = "product_id must be a non-empty string or an integer"
ERROR_INVALID_UNIT_PRICE = "unit_price must be a non-negative number"
ERROR_INVALID_QUANTITY = "quantity must be a positive integer"
ERROR_INVALID_NEW_QUANTITY = "new_quantity must be an integer"
ERROR_INVALID_DISCOUNT = "discount must be a non-negative number"
ERROR_INVALID_OPTIONS = "selected_options must map option names to text, number, boolean or null values"
ERROR_INVALID_BATCH = "expected a list of entries"
ERROR_INVALID_LINE_ID = "line ids must be strings"
ERROR_EMPTY_BATCH = "at least one item is required"
ERROR_QUANTITY_LIMIT = "Quantity must be between 1 and {limit}"
ERROR_TOTAL_ITEMS_LIMIT = "Cannot exceed {limit} total items in cart"

# Persistence errors
ERROR_CORRUPTED_PAYLOAD = "Stored cart payload is corrupted"
ERROR_SYNC_FAILED = "Failed to save cart changes"
ERROR_CART_UNAVAILABLE = "Cart temporarily unavailable"


class CartError(Exception):
    """Base class for cart errors."""


class InvalidCartInputError(CartError, ValueError):
    """Command arguments rejected before any mutation."""


class LineNotFoundError(CartError, LookupError):
    """Command references a line id that is not in the cart."""

    def __init__(self, line_id, message: str = ERROR_LINE_NOT_FOUND):
        super().__init__(message)
        self.line_id = line_id


class CorruptedCartPayloadError(CartError):
    """Stored cart payload could not be deserialized or breaks cart invariants."""


class StorageError(CartError):
    """Durable store failed a read or write; recoverable."""


class CartUnavailableError(CartError):
    """Unexpected storage failure; callers show a generic 'cart unavailable' notice."""

    def __init__(self, message: str = ERROR_CART_UNAVAILABLE):
        super().__init__(message)
