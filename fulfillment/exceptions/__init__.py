"""Custom exceptions for the fulfillment backend."""


class FulfillmentError(Exception):
    """Base exception for all application errors."""
    kind = 'InternalError'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['error'] = self.message
        return rv


class ValidationError(FulfillmentError):
    """Malformed or missing input, length limits."""
    kind = 'ValidationError'

    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class UnknownProductError(FulfillmentError):
    """Raised when a cart line references a product that does not exist."""
    kind = 'UnknownProduct'

    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}", 400)
        self.product_id = product_id


class ProductUnavailableError(FulfillmentError):
    """Raised when a product (or its variant) is not active."""
    kind = 'ProductUnavailable'

    def __init__(self, product_name):
        super().__init__(f"Product is not available: {product_name}", 400)
        self.product_name = product_name


class InsufficientStockError(FulfillmentError):
    """Raised when an operation fails due to lack of stock."""
    kind = 'InsufficientStock'

    def __init__(self, product_name, required, available):
        message = f"Insufficient stock for {product_name}. Available: {int(available)}"
        super().__init__(message, 409)
        self.product_name = product_name
        self.required = required
        self.available = available


class ShippingUnavailableError(FulfillmentError):
    """Raised when the requested shipping method is not eligible for the inputs."""
    kind = 'ShippingUnavailable'

    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class PersistenceError(FulfillmentError):
    """Raised when a storage write fails."""
    kind = 'PersistenceFailure'

    def __init__(self, message="Failed to persist order", payload=None):
        super().__init__(message, 500, payload)


class NotFoundError(FulfillmentError):
    """Exception raised when a resource is not found."""
    kind = 'NotFound'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InvalidTransitionError(FulfillmentError):
    """Raised when a status change is not allowed from the current status."""
    kind = 'InvalidTransition'

    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class AlreadyClaimedError(FulfillmentError):
    """Raised when a driver tries to claim a delivery that already has a driver."""
    kind = 'AlreadyClaimed'

    def __init__(self, delivery_id):
        super().__init__(f"Delivery {delivery_id} was already claimed", 409)
        self.delivery_id = delivery_id
