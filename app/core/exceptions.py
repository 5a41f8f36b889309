"""Domain exceptions raised by the service and outbox layers."""


class CustomerServiceError(Exception):
    """Base class for every error raised by this service."""
    code = "service_error"


class CustomerNotFoundError(CustomerServiceError):
    code = "customer_not_found"

    def __init__(self, identifier):
        super().__init__(f"Customer not found with {identifier}")
        self.identifier = identifier


class CustomerAlreadyExistsError(CustomerServiceError):
    code = "customer_already_exists"

    def __init__(self, detail: str):
        super().__init__(f"Customer already exists with {detail}")


class BusinessRuleError(CustomerServiceError):
    """A business rule was violated (e.g. age not eligible for a home loan)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class SerializationError(CustomerServiceError):
    """The event snapshot could not be serialized. Aborts the enclosing transaction."""
    code = "serialization_error"


class PublishError(CustomerServiceError):
    """The broker did not accept a message."""
    code = "publish_error"


class StoreError(CustomerServiceError):
    """The outbox record store could not be read or updated."""
    code = "store_error"
