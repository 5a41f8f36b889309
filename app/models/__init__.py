# app/models/__init__.py
from .customer import Address, AddressType, Customer, CustomerStatus, EmploymentDetails, EmploymentType
from .outbox import OutboxEvent, OutboxStatus

# Export all models
__all__ = [
    "Address",
    "AddressType",
    "Customer",
    "CustomerStatus",
    "EmploymentDetails",
    "EmploymentType",
    "OutboxEvent",
    "OutboxStatus",
]
